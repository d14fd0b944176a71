"""Repository handling persistence for the credential and token stores."""
from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from passlib.context import CryptContext
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.auth.enums import TokenKind, TokenType, UserRole
from backend.app.auth.models import Token, User

DEFAULT_PWD_CONTEXT = CryptContext(schemes=["bcrypt"], deprecated="auto")
TIMING_GUARD_PASSWORD = "library-manager-timing-guard"

# Keyed by id(); the context is kept alongside so the id cannot be reused.
_TIMING_HASHES: Dict[int, Tuple[CryptContext, str]] = {}


def timing_hash(pwd_context: CryptContext) -> str:
    """Return a process-wide hash for ``pwd_context`` used to pad unknown-user checks."""

    cached = _TIMING_HASHES.get(id(pwd_context))
    if cached is None:
        cached = (pwd_context, pwd_context.hash(TIMING_GUARD_PASSWORD))
        _TIMING_HASHES[id(pwd_context)] = cached
    return cached[1]


class AuthRepository:
    """Provide database access helpers for authentication workflows."""

    def __init__(self, session: AsyncSession, pwd_context: Optional[CryptContext] = None) -> None:
        self._session = session
        self._pwd_context = pwd_context or DEFAULT_PWD_CONTEXT

    @property
    def session(self) -> AsyncSession:
        """Return the underlying SQLAlchemy session."""

        return self._session

    def hash_password(self, password: str) -> str:
        """Hash the provided password using bcrypt."""

        return self._pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: Optional[str]) -> bool:
        """Verify whether a plaintext password matches a stored hash."""

        if not hashed_password:
            return False
        return self._pwd_context.verify(plain_password, hashed_password)

    def verify_timing_guard(self, plain_password: str) -> bool:
        """Spend one password verification without a stored hash to compare against."""

        return self._pwd_context.verify(plain_password, timing_hash(self._pwd_context))

    @staticmethod
    def hash_token(token: str) -> str:
        """Return a deterministic hash for sensitive token storage."""

        digest = hashlib.sha256()
        digest.update(token.encode("utf-8"))
        return digest.hexdigest()

    @staticmethod
    def normalize_email(email: str) -> str:
        """Return the canonical form used for email lookups."""

        return email.strip().lower()

    async def create_user(
        self,
        email: str,
        password: str,
        *,
        first_name: str,
        last_name: str,
        role: UserRole = UserRole.USER,
        enabled: bool = False,
        confirmation_code: Optional[str] = None,
    ) -> User:
        """Persist a new user with a hashed password."""

        user = User(
            email=self.normalize_email(email),
            hashed_password=self.hash_password(password),
            first_name=first_name,
            last_name=last_name,
            role=role,
            enabled=enabled,
            confirmation_code=confirmation_code,
        )
        self._session.add(user)
        await self._session.flush()
        return user

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Retrieve a user record by email address."""

        result = await self._session.execute(
            select(User).where(User.email == self.normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        """Retrieve a user record by identifier."""

        result = await self._session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def lock_user(self, user_id: str) -> Optional[User]:
        """Take the write lock on a user row and return the fresh record.

        The first statement of the transaction is an ``UPDATE`` so that SQLite
        acquires its RESERVED lock before any token is read; other databases
        hold the row lock until commit. Concurrent callers for the same user
        queue here.
        """

        result = await self._session.execute(
            update(User)
            .where(User.id == user_id)
            .values(updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        refreshed = await self._session.execute(
            select(User).where(User.id == user_id).execution_options(populate_existing=True)
        )
        return refreshed.scalar_one_or_none()

    async def enable_user(self, user: User, timestamp: Optional[datetime] = None) -> None:
        """Mark a confirmed user as enabled."""

        user.enabled = True
        user.updated_at = timestamp or datetime.now(timezone.utc)
        await self._session.flush()

    async def update_role(self, user: User, role: UserRole) -> None:
        """Change the role assigned to a user."""

        user.role = role
        user.updated_at = datetime.now(timezone.utc)
        await self._session.flush()

    async def create_token(
        self,
        user: User,
        token: str,
        kind: TokenKind,
        expires_at: datetime,
    ) -> Token:
        """Persist a freshly issued, valid token for a user."""

        record = Token(
            user_id=user.id,
            token_hash=self.hash_token(token),
            token_type=TokenType.BEARER,
            kind=kind,
            expired=False,
            revoked=False,
            expires_at=expires_at,
        )
        self._session.add(record)
        await self._session.flush()
        return record

    async def get_token(self, token: str) -> Optional[Token]:
        """Retrieve a stored token entry using the raw token string."""

        result = await self._session.execute(
            select(Token).where(Token.token_hash == self.hash_token(token))
        )
        return result.scalar_one_or_none()

    async def list_valid_tokens(
        self, user_id: str, kinds: Optional[Iterable[TokenKind]] = None
    ) -> List[Token]:
        """Return every token of a user that is neither revoked nor expired."""

        statement = select(Token).where(
            Token.user_id == user_id,
            Token.revoked.is_(False),
            Token.expired.is_(False),
        )
        if kinds is not None:
            statement = statement.where(Token.kind.in_(list(kinds)))
        result = await self._session.execute(statement)
        return list(result.scalars().all())

    async def revoke_tokens(self, tokens: Sequence[Token]) -> None:
        """Flag the given tokens as revoked and expired in one flush."""

        if not tokens:
            return
        for token in tokens:
            token.expired = True
            token.revoked = True
        await self._session.flush()

    async def commit(self) -> None:
        """Commit the current transaction."""

        await self._session.commit()

    async def rollback(self) -> None:
        """Rollback the current transaction."""

        await self._session.rollback()


__all__ = ["AuthRepository"]
