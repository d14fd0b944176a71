"""Service layer orchestrating registration, login and token lifecycle."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol

from sqlalchemy.exc import IntegrityError

from backend.app.auth.confirmation import (
    EmailDeliveryError,
    confirmation_matches,
    generate_confirmation_code,
    redact_email,
)
from backend.app.auth.context import AuthContext
from backend.app.auth.credentials import PasswordAuthenticator
from backend.app.auth.enums import TokenKind, UserRole
from backend.app.auth.errors import AuthenticationError, AuthValidationError, TokenError
from backend.app.auth.models import User
from backend.app.auth.repository import AuthRepository
from backend.app.auth.schemas import AuthUser, LoginRequest, RegisterRequest, TokenPair
from backend.app.auth.tokens import JWTManager, TokenCodecError, parse_bearer_token
from backend.app.config import AuthConfig

LOGGER = logging.getLogger(__name__)

DUPLICATE_EMAIL_MESSAGE = "A user with the same email already exists"
EMAIL_REJECTED_MESSAGE = "Unable to send confirmation email. Please check your input"
EMAIL_FAILED_MESSAGE = "Unable to send confirmation email"
LOGIN_FAILED_MESSAGE = (
    "Unable to authenticate with provided email and password. "
    "Please check your inputs or if you have confirmed your account"
)
UNKNOWN_CONFIRMATION_MESSAGE = "Invalid confirmation link"
INVALID_CONFIRMATION_MESSAGE = "The code is invalid or already confirmed"
INVALID_HEADER_MESSAGE = "Invalid header format for refreshing token"
REFRESH_FAILED_MESSAGE = "Unable to refresh using provided token"


class ConfirmationSender(Protocol):
    """Outbound email collaborator used during registration."""

    async def send_confirmation_email(
        self, recipient: str, first_name: str, last_name: str, code: str
    ) -> bool:
        ...


class AuthService:
    """Coordinate repository operations, token issuance and confirmation email."""

    def __init__(
        self,
        config: AuthConfig,
        repository: AuthRepository,
        jwt_manager: JWTManager,
        email_dispatcher: ConfirmationSender,
        authenticator: Optional[PasswordAuthenticator] = None,
    ) -> None:
        self._config = config
        self._repository = repository
        self._jwt_manager = jwt_manager
        self._email_dispatcher = email_dispatcher
        self._authenticator = authenticator or PasswordAuthenticator(repository)

    @staticmethod
    def _now() -> datetime:
        """Return current UTC timestamp."""

        return datetime.now(timezone.utc)

    @staticmethod
    def to_auth_user(user: User) -> AuthUser:
        """Convert ORM user model into API schema."""

        return AuthUser(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            enabled=user.enabled,
            created_at=user.created_at,
        )

    def _token_pair(self, access_token: str, refresh_token: str) -> TokenPair:
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="bearer",
            expires_in=self._config.jwt.access_token_expires_minutes * 60,
        )

    async def register(self, payload: RegisterRequest) -> AuthUser:
        """Register a disabled user once the confirmation email went out.

        Raises:
            AuthValidationError: With an ``email`` violation when the address is
                taken or the confirmation email could not be delivered.
        """

        existing = await self._repository.get_user_by_email(payload.email)
        if existing is not None:
            raise AuthValidationError(
                "Email already registered", violations={"email": DUPLICATE_EMAIL_MESSAGE}
            )

        code = generate_confirmation_code()
        try:
            delivered = await self._email_dispatcher.send_confirmation_email(
                payload.email, payload.first_name, payload.last_name, code
            )
        except EmailDeliveryError as exc:
            raise AuthValidationError(
                "Confirmation email failed", violations={"email": EMAIL_FAILED_MESSAGE}
            ) from exc
        if not delivered:
            raise AuthValidationError(
                "Confirmation email rejected", violations={"email": EMAIL_REJECTED_MESSAGE}
            )

        try:
            user = await self._repository.create_user(
                payload.email,
                payload.password,
                first_name=payload.first_name,
                last_name=payload.last_name,
                role=UserRole.USER,
                enabled=False,
                confirmation_code=code,
            )
            await self._repository.commit()
        except IntegrityError as exc:
            await self._repository.rollback()
            raise AuthValidationError(
                "Email already registered", violations={"email": DUPLICATE_EMAIL_MESSAGE}
            ) from exc
        except Exception:
            await self._repository.rollback()
            LOGGER.exception("Failed to persist registration for %s", redact_email(payload.email))
            raise

        LOGGER.info("Registered user %s pending confirmation", user.id)
        return self.to_auth_user(user)

    async def confirm_register(self, email: str, code: str) -> None:
        """Enable the account owning ``email`` when ``code`` matches."""

        user = await self._repository.get_user_by_email(email)
        if user is None:
            raise AuthValidationError(
                "Unknown confirmation email", violations={"url": UNKNOWN_CONFIRMATION_MESSAGE}
            )
        if not confirmation_matches(user, code):
            raise AuthValidationError(
                "Confirmation rejected", violations={"url": INVALID_CONFIRMATION_MESSAGE}
            )

        try:
            await self._repository.enable_user(user, self._now())
            await self._repository.commit()
        except Exception:
            await self._repository.rollback()
            raise
        LOGGER.info("Confirmed user %s", user.id)

    async def login(self, payload: LoginRequest) -> TokenPair:
        """Verify credentials and start a new session for the user.

        Every token previously valid for the user is revoked before the new
        pair is stored.
        """

        user = await self._authenticator.authenticate(payload.email, payload.password)
        if user is None:
            LOGGER.info("Rejected login for %s", redact_email(payload.email))
            raise AuthenticationError(
                "Authentication failed", violations={"authentication": LOGIN_FAILED_MESSAGE}
            )

        try:
            locked = await self._repository.lock_user(user.id)
            if locked is None:
                raise AuthenticationError(
                    "Authentication failed", violations={"authentication": LOGIN_FAILED_MESSAGE}
                )
            access = self._jwt_manager.issue(locked, TokenKind.ACCESS)
            refresh = self._jwt_manager.issue(locked, TokenKind.REFRESH)
            await self.revoke_all_tokens(locked)
            await self._repository.create_token(locked, access.token, TokenKind.ACCESS, access.expires_at)
            await self._repository.create_token(locked, refresh.token, TokenKind.REFRESH, refresh.expires_at)
            await self._repository.commit()
        except Exception:
            await self._repository.rollback()
            raise

        LOGGER.info("User %s logged in", user.id)
        return self._token_pair(access.token, refresh.token)

    async def refresh_token(self, authorization: Optional[str]) -> TokenPair:
        """Mint a new access token from the refresh token in ``authorization``.

        The presented refresh token is returned unchanged and stays valid.
        """

        refresh_token = parse_bearer_token(authorization)
        if refresh_token is None:
            raise TokenError("Missing bearer token", violations={"token": INVALID_HEADER_MESSAGE})

        try:
            subject = self._jwt_manager.extract_identity(refresh_token)
        except TokenCodecError as exc:
            raise TokenError(
                "Unable to extract identity", violations={"token": REFRESH_FAILED_MESSAGE}
            ) from exc

        user = await self._repository.get_user_by_id(subject)
        if user is None:
            raise TokenError("Unknown token subject", violations={"token": REFRESH_FAILED_MESSAGE})

        stored = await self._repository.get_token(refresh_token)
        if stored is None or not stored.is_valid:
            LOGGER.info("Rejected refresh token for user %s: not stored or no longer valid", user.id)
            raise TokenError("Refresh token not valid", violations={"token": REFRESH_FAILED_MESSAGE})

        if not self._jwt_manager.is_valid(refresh_token, user, kind=TokenKind.REFRESH):
            raise TokenError("Refresh token not valid", violations={"token": REFRESH_FAILED_MESSAGE})
        if not user.enabled:
            raise TokenError("User disabled", violations={"token": REFRESH_FAILED_MESSAGE})

        try:
            locked = await self._repository.lock_user(user.id)
            if locked is None:
                raise TokenError("Unknown token subject", violations={"token": REFRESH_FAILED_MESSAGE})
            await self._repository.session.refresh(stored)
            if not stored.is_valid:
                raise TokenError("Refresh token not valid", violations={"token": REFRESH_FAILED_MESSAGE})
            access = self._jwt_manager.issue(locked, TokenKind.ACCESS)
            await self.revoke_all_tokens(locked, kinds=[TokenKind.ACCESS])
            await self._repository.create_token(locked, access.token, TokenKind.ACCESS, access.expires_at)
            await self._repository.commit()
        except Exception:
            await self._repository.rollback()
            raise

        LOGGER.info("Refreshed access token for user %s", user.id)
        return self._token_pair(access.token, refresh_token)

    async def logout(self, authorization: Optional[str], context: Optional[AuthContext] = None) -> None:
        """Revoke the presented token; a missing or unknown token is a no-op."""

        token = parse_bearer_token(authorization)
        if token is None:
            return

        stored = await self._repository.get_token(token)
        if stored is not None and stored.is_valid:
            try:
                await self._repository.revoke_tokens([stored])
                await self._repository.commit()
            except Exception:
                await self._repository.rollback()
                raise
            LOGGER.info("Revoked %s token for user %s on logout", stored.kind.value, stored.user_id)
        if context is not None:
            context.clear()

    async def revoke_all_tokens(
        self, user: User, kinds: Optional[Iterable[TokenKind]] = None
    ) -> int:
        """Flag every currently valid token of ``user`` as revoked and expired.

        Runs inside the caller's transaction; the caller commits.
        """

        tokens = await self._repository.list_valid_tokens(user.id, kinds)
        await self._repository.revoke_tokens(tokens)
        if tokens:
            LOGGER.info("Revoked %d token(s) for user %s", len(tokens), user.id)
        return len(tokens)

    async def authenticate(self, token: str) -> AuthUser:
        """Validate a bearer access token and load the associated user."""

        try:
            subject = self._jwt_manager.extract_identity(token)
        except TokenCodecError as exc:
            raise TokenError("Invalid access token", violations={"token": "Invalid access token"}) from exc

        user = await self._repository.get_user_by_id(subject)
        if user is None or not user.enabled:
            raise TokenError("User not authorized", violations={"token": "User not authorized"})
        if not self._jwt_manager.is_valid(token, user, kind=TokenKind.ACCESS):
            raise TokenError("Invalid access token", violations={"token": "Invalid access token"})
        stored = await self._repository.get_token(token)
        if stored is None or not stored.is_valid:
            raise TokenError("Access token revoked", violations={"token": "Access token revoked"})
        return self.to_auth_user(user)


__all__ = ["AuthService", "ConfirmationSender"]
