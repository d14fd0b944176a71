"""Per-request authentication context."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from backend.app.auth.schemas import AuthUser


@dataclass
class AuthContext:
    """Principal authenticated for the current request, if any."""

    principal: Optional[AuthUser] = None
    token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

    def authenticate(self, principal: AuthUser, token: str) -> None:
        self.principal = principal
        self.token = token

    def clear(self) -> None:
        self.principal = None
        self.token = None


__all__ = ["AuthContext"]
