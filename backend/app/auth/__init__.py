"""Authentication package: registration, confirmation and JWT session lifecycle."""

from backend.app.auth.confirmation import EmailDispatcher
from backend.app.auth.service import AuthService
from backend.app.auth.tokens import JWTManager

__all__ = ["AuthService", "JWTManager", "EmailDispatcher"]
