"""Pydantic schemas for authentication APIs."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from backend.app.auth.enums import UserRole


class _FrozenModel(BaseModel):
    """Base immutable schema."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class AuthUser(_FrozenModel):
    """User information exposed through the API."""

    id: str = Field(..., min_length=1)
    email: str
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    role: UserRole
    enabled: bool
    created_at: datetime = Field(..., alias="createdAt")


class SessionStatusResponse(_FrozenModel):
    """Response payload describing authentication state."""

    authenticated: bool
    user: Optional[AuthUser] = None


class TokenPair(_FrozenModel):
    """Access and refresh tokens returned after login or refresh."""

    access_token: str = Field(..., min_length=1, alias="accessToken")
    refresh_token: str = Field(..., min_length=1, alias="refreshToken")
    token_type: str = Field("bearer", min_length=1, alias="tokenType")
    expires_in: int = Field(..., ge=1, alias="expiresIn")


class MessageResponse(_FrozenModel):
    """Plain confirmation message."""

    message: str = Field(..., min_length=1)


class RegisterRequest(BaseModel):
    """Registration input payload."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    email: EmailStr = Field(..., max_length=320)
    password: str = Field(..., min_length=8, max_length=72)
    first_name: str = Field(..., min_length=1, max_length=100, alias="firstName")
    last_name: str = Field(..., min_length=1, max_length=100, alias="lastName")


class LoginRequest(BaseModel):
    """Login request payload."""

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(..., min_length=1, max_length=320)
    password: str = Field(..., min_length=1, max_length=72)


__all__ = [
    "AuthUser",
    "LoginRequest",
    "MessageResponse",
    "RegisterRequest",
    "SessionStatusResponse",
    "TokenPair",
]
