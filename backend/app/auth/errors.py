"""Error taxonomy raised by the authentication service."""
from __future__ import annotations

from typing import Dict, Mapping, Optional


class AuthServiceError(RuntimeError):
    """Raised when authentication operations fail.

    ``violations`` maps a field name to a human readable message and is what
    the HTTP boundary returns to the client.
    """

    default_reason = "bad_request"

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        violations: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason or self.default_reason
        self.violations: Dict[str, str] = dict(violations or {})


class AuthValidationError(AuthServiceError):
    """Malformed input, duplicate email or failed confirmation."""


class AuthenticationError(AuthServiceError):
    """Credentials rejected; the message never says which factor failed."""

    default_reason = "unauthorized"


class TokenError(AuthServiceError):
    """Missing, malformed, expired, revoked or forged token."""

    default_reason = "unauthorized"


__all__ = ["AuthServiceError", "AuthValidationError", "AuthenticationError", "TokenError"]
