"""Credential verification against the user store."""
from __future__ import annotations

import logging
from typing import Optional

from backend.app.auth.models import User
from backend.app.auth.repository import AuthRepository

LOGGER = logging.getLogger(__name__)


class PasswordAuthenticator:
    """Verify an email/password pair and refuse accounts that are not enabled."""

    def __init__(self, repository: AuthRepository) -> None:
        self._repository = repository

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        """Return the user when the credentials match an enabled account.

        Every outcome costs exactly one bcrypt verification, unknown emails
        included.
        """

        user = await self._repository.get_user_by_email(email)
        if user is None:
            self._repository.verify_timing_guard(password)
            return None
        if not self._repository.verify_password(password, user.hashed_password):
            return None
        if not user.enabled:
            LOGGER.info("Login attempt for account pending confirmation (user_id=%s)", user.id)
            return None
        return user


__all__ = ["PasswordAuthenticator"]
