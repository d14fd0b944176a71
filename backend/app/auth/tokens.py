"""Signed, time-bound access and refresh tokens."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

from jose import ExpiredSignatureError, JWTError, jwt

from backend.app.auth.enums import TokenKind
from backend.app.auth.models import User
from backend.app.config import AuthJWTConfig

LOGGER = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


class TokenCodecError(RuntimeError):
    """Raised when a token cannot be decoded."""


class MalformedTokenError(TokenCodecError):
    """Raised when a token is unparseable, tampered with or lacks a subject."""


class ExpiredTokenError(TokenCodecError):
    """Raised when a correctly signed token is past its expiry."""


@dataclass(frozen=True)
class IssuedToken:
    """Signed token string together with its expiry."""

    token: str
    kind: TokenKind
    expires_at: datetime


class JWTManager:
    """Helper for encoding and decoding JSON Web Tokens."""

    def __init__(
        self, config: AuthJWTConfig, clock: Optional[Callable[[], datetime]] = None
    ) -> None:
        self._config = config
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def ttl_for(self, kind: TokenKind) -> timedelta:
        """Return the lifetime configured for a token kind."""

        if kind is TokenKind.REFRESH:
            return self._config.refresh_token_ttl
        return self._config.access_token_ttl

    def issue(
        self,
        user: User,
        kind: TokenKind,
        expires_delta: Optional[timedelta] = None,
        issued_at: Optional[datetime] = None,
    ) -> IssuedToken:
        """Create a signed token for ``user``.

        Args:
            user: Subject of the token.
            kind: Access or refresh; selects the lifetime.
            expires_delta: Optional lifetime override.
            issued_at: Optional issue time override.

        Returns:
            IssuedToken: Encoded token and its expiry.
        """

        now = issued_at or self._clock()
        expire_at = now + (expires_delta or self.ttl_for(kind))
        payload: Dict[str, Any] = {
            "sub": user.id,
            "email": user.email,
            "role": user.role.value,
            "kind": kind.value,
            "jti": uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int(expire_at.timestamp()),
        }
        token = jwt.encode(payload, self._config.secret_key, algorithm=self._config.algorithm)
        return IssuedToken(token=token, kind=kind, expires_at=expire_at)

    def decode(self, token: str) -> Dict[str, Any]:
        """Decode and validate a JWT.

        Raises:
            ExpiredTokenError: If the signature is valid but the token expired.
            MalformedTokenError: If the token cannot be decoded or verified.
        """

        try:
            return jwt.decode(token, self._config.secret_key, algorithms=[self._config.algorithm])
        except ExpiredSignatureError as exc:
            raise ExpiredTokenError("Token has expired") from exc
        except JWTError as exc:
            raise MalformedTokenError("Unable to decode token") from exc

    def extract_identity(self, token: str) -> str:
        """Return the subject identity embedded in ``token``."""

        payload = self.decode(token)
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise MalformedTokenError("Token does not carry a subject")
        return subject

    def is_valid(self, token: str, user: User, kind: Optional[TokenKind] = None) -> bool:
        """Check signature, expiry, subject and optionally kind against ``user``."""

        try:
            payload = self.decode(token)
        except TokenCodecError as exc:
            LOGGER.info("Rejected token: %s", exc)
            return False
        if payload.get("sub") != user.id:
            return False
        if kind is not None and payload.get("kind") != kind.value:
            return False
        return True


def parse_bearer_token(header: Optional[str]) -> Optional[str]:
    """Return the token carried by an ``Authorization`` header, if any."""

    if header is None or not header.startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return token or None


__all__ = [
    "BEARER_PREFIX",
    "ExpiredTokenError",
    "IssuedToken",
    "JWTManager",
    "MalformedTokenError",
    "TokenCodecError",
    "parse_bearer_token",
]
