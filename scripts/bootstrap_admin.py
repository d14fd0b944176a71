#!/usr/bin/env python3
"""Create or promote an enabled administrator account.

Usage:
    ADMIN_EMAIL=admin@library.example ADMIN_PASSWORD=... python scripts/bootstrap_admin.py
    python scripts/bootstrap_admin.py --email admin@library.example --password ... --first-name Ada
    python scripts/bootstrap_admin.py --email member@library.example   # promote, keeps the stored password
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from backend.app.auth.enums import UserRole
from backend.app.auth.migrations.versions import initial as initial_migration
from backend.app.auth.repository import AuthRepository
from backend.app.config import ConfigError, load_config

LOGGER = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 12


@dataclass(frozen=True)
class BootstrapResult:
    """Outcome of a bootstrap run."""

    user_id: Optional[str]
    email: str
    status: str


def validate_password(password: str) -> bool:
    """Require a long password mixing at least three character classes."""

    if len(password) < MIN_PASSWORD_LENGTH or len(password) > 72:
        return False
    has_upper = any(c.isupper() for c in password)
    has_lower = any(c.islower() for c in password)
    has_digit = any(c.isdigit() for c in password)
    has_special = any(not c.isalnum() for c in password)
    return sum([has_upper, has_lower, has_digit, has_special]) >= 3


async def bootstrap_admin(
    repository: AuthRepository,
    email: str,
    password: Optional[str] = None,
    *,
    first_name: str = "Library",
    last_name: str = "Administrator",
    dry_run: bool = False,
) -> BootstrapResult:
    """Create an enabled admin, or promote and enable an existing account.

    An existing account keeps its stored password; ``password`` is only used
    when a new account is created.
    """

    existing = await repository.get_user_by_email(email)
    if existing is not None:
        if existing.role is UserRole.ADMIN and existing.enabled:
            return BootstrapResult(existing.id, existing.email, "already_admin")
        if dry_run:
            return BootstrapResult(existing.id, existing.email, "dry_run")
        try:
            await repository.update_role(existing, UserRole.ADMIN)
            if not existing.enabled:
                await repository.enable_user(existing)
            await repository.commit()
        except Exception:
            await repository.rollback()
            raise
        return BootstrapResult(existing.id, existing.email, "promoted")

    if password is None:
        return BootstrapResult(None, repository.normalize_email(email), "password_required")
    if dry_run:
        return BootstrapResult(None, repository.normalize_email(email), "dry_run")
    try:
        user = await repository.create_user(
            email,
            password,
            first_name=first_name,
            last_name=last_name,
            role=UserRole.ADMIN,
            enabled=True,
        )
        await repository.commit()
    except Exception:
        await repository.rollback()
        raise
    return BootstrapResult(user.id, user.email, "created")


async def _run(args: argparse.Namespace) -> BootstrapResult:
    config = load_config(Path(args.config)) if args.config else load_config()
    engine = create_async_engine(config.auth.database_url)
    try:
        async with engine.begin() as connection:
            await connection.run_sync(initial_migration.upgrade)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        async with session_factory() as session:
            return await bootstrap_admin(
                AuthRepository(session),
                args.email,
                args.password,
                first_name=args.first_name,
                last_name=args.last_name,
                dry_run=args.dry_run,
            )
    finally:
        await engine.dispose()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments for the bootstrap utility."""

    parser = argparse.ArgumentParser(
        description="Bootstrap an administrator account",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--email", default=os.environ.get("ADMIN_EMAIL"), help="Admin email (or ADMIN_EMAIL)")
    parser.add_argument(
        "--password",
        default=os.environ.get("ADMIN_PASSWORD"),
        help="Password for a new account (or ADMIN_PASSWORD); an existing account keeps its stored password",
    )
    parser.add_argument("--first-name", default="Library", help="Given name stored on the account")
    parser.add_argument("--last-name", default="Administrator", help="Family name stored on the account")
    parser.add_argument("--config", default=None, help="Path to an alternative config.yaml")
    parser.add_argument("--dry-run", action="store_true", help="Report what would change without writing")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the admin bootstrap utility.

    Returns:
        int: Exit status code where ``0`` indicates success.
    """
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    args = parse_args(argv)

    if not args.email:
        print("Error: --email (or ADMIN_EMAIL) is required", file=sys.stderr)
        return 1
    if args.password is not None and not validate_password(args.password):
        print(
            f"Error: password must have {MIN_PASSWORD_LENGTH}-72 characters and 3+ character classes",
            file=sys.stderr,
        )
        return 1

    try:
        result = asyncio.run(_run(args))
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if result.status == "password_required":
        print(f"Error: {result.email} does not exist; --password is required to create it", file=sys.stderr)
        return 1

    LOGGER.info("Admin bootstrap finished: status=%s user_id=%s", result.status, result.user_id)
    print(f"{result.status}: {result.email}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
