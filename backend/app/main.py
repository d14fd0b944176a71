"""FastAPI application entrypoint for the library authentication service."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from backend.app.auth.confirmation import EmailDispatcher
from backend.app.auth.migrations.versions import initial as initial_migration
from backend.app.auth.repository import DEFAULT_PWD_CONTEXT, timing_hash
from backend.app.auth.router import router as auth_router
from backend.app.auth.tokens import JWTManager
from backend.app.config import AppConfig, load_config

LOGGER = logging.getLogger(__name__)


def _configure_logging(config: AppConfig) -> None:
    """Apply the configured level to the backend logger hierarchy."""

    logging.getLogger("backend").setLevel(config.logging.level)


def _ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""

    url = make_url(database_url)
    if not url.get_backend_name().startswith("sqlite"):
        return
    database = url.database
    if not database or database == ":memory:":
        return
    Path(database).parent.mkdir(parents=True, exist_ok=True)


def create_app(
    config: AppConfig | None = None,
    email_dispatcher: Optional[EmailDispatcher] = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        config: Optional pre-loaded configuration. If omitted, the default
            configuration defined in config.yaml is used.
        email_dispatcher: Optional confirmation email sender. When omitted an
            SMTP dispatcher is built from the ``auth.smtp`` section.

    Returns:
        FastAPI: Configured FastAPI application.
    """

    resolved_config = config or load_config()
    _configure_logging(resolved_config)
    app = FastAPI(title=resolved_config.service.name, version=resolved_config.service.version)
    app.state.app_config = resolved_config

    _ensure_sqlite_directory(resolved_config.auth.database_url)
    auth_engine: AsyncEngine = create_async_engine(resolved_config.auth.database_url)
    auth_session_factory = async_sessionmaker(auth_engine, expire_on_commit=False)
    app.state.auth_engine = auth_engine
    app.state.auth_session_factory = auth_session_factory
    app.state.auth_config = resolved_config.auth
    app.state.jwt_manager = JWTManager(resolved_config.auth.jwt)
    app.state.email_dispatcher = email_dispatcher or EmailDispatcher(
        resolved_config.auth.smtp, resolved_config.auth.confirmation
    )
    if resolved_config.auth.confirmation.recipient_override:
        LOGGER.warning(
            "Confirmation emails are redirected to a fixed recipient; registrants will not receive them"
        )

    @app.on_event("startup")
    async def _init_auth_schema() -> None:
        async with auth_engine.begin() as connection:
            await connection.run_sync(initial_migration.upgrade)
        timing_hash(DEFAULT_PWD_CONTEXT)
        LOGGER.info("Authentication schema ready")

    @app.on_event("shutdown")
    async def _dispose_auth_engine() -> None:
        await auth_engine.dispose()

    @app.get("/health", tags=["system"], summary="Service health probe")
    def health() -> dict[str, str]:
        """Return service health information."""

        return {
            "status": "ok",
            "service": resolved_config.service.name,
            "version": resolved_config.service.version,
        }

    app.include_router(auth_router)

    return app


__all__ = ["create_app"]
