"""Shared authentication enums."""
from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    """Enumerated application role."""

    USER = "user"
    ADMIN = "admin"


class TokenType(str, Enum):
    """HTTP authentication scheme a stored token is presented with."""

    BEARER = "bearer"


class TokenKind(str, Enum):
    """Lifetime class of an issued token."""

    ACCESS = "access"
    REFRESH = "refresh"


__all__ = ["UserRole", "TokenType", "TokenKind"]
