"""Initial migration creating the credential and token tables."""
from __future__ import annotations

from sqlalchemy.engine import Connection

from backend.app.auth.models import AuthBase


def upgrade(connection: Connection) -> None:
    """Create the users and tokens tables when missing."""

    AuthBase.metadata.create_all(connection)


def downgrade(connection: Connection) -> None:
    """Drop the users and tokens tables."""

    AuthBase.metadata.drop_all(connection)


__all__ = ["upgrade", "downgrade"]
