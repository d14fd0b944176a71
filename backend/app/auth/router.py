"""FastAPI router for authentication endpoints."""
from __future__ import annotations

from typing import Any, AsyncIterator, Dict, Mapping, Optional, cast

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.auth.confirmation import EmailDispatcher
from backend.app.auth.context import AuthContext
from backend.app.auth.errors import AuthServiceError
from backend.app.auth.repository import AuthRepository
from backend.app.auth.schemas import (
    AuthUser,
    MessageResponse,
    SessionStatusResponse,
    TokenPair,
)
from backend.app.auth.service import AuthService
from backend.app.auth.tokens import JWTManager, parse_bearer_token
from backend.app.auth.validation import validate_login_request, validate_register_request
from backend.app.config import AuthConfig

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _status_from_reason(reason: str) -> int:
    """Translate service error reasons into HTTP status codes."""

    mapping = {
        "bad_request": status.HTTP_400_BAD_REQUEST,
        "conflict": status.HTTP_409_CONFLICT,
        "unauthorized": status.HTTP_401_UNAUTHORIZED,
        "forbidden": status.HTTP_403_FORBIDDEN,
        "not_found": status.HTTP_404_NOT_FOUND,
    }
    return mapping.get(reason, status.HTTP_400_BAD_REQUEST)


def _http_error(exc: AuthServiceError) -> HTTPException:
    detail: Any = exc.violations or str(exc)
    return HTTPException(status_code=_status_from_reason(exc.reason), detail=detail)


def _bad_request(violations: Mapping[str, str]) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=dict(violations))


def get_auth_config(request: Request) -> AuthConfig:
    """Resolve the auth configuration from the application state."""

    return request.app.state.auth_config


async def get_auth_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield an auth database session scoped to the request."""

    session_factory = cast(
        async_sessionmaker[AsyncSession], request.app.state.auth_session_factory
    )
    async with session_factory() as session:
        yield session


def get_jwt_manager(request: Request) -> JWTManager:
    """Return the JWT manager stored on the app state."""

    return request.app.state.jwt_manager


def get_email_dispatcher(request: Request) -> EmailDispatcher:
    """Return the email dispatcher stored on the app state."""

    return request.app.state.email_dispatcher


def get_auth_context(request: Request) -> AuthContext:
    """Return the authentication context of the current request."""

    context = getattr(request.state, "auth_context", None)
    if context is None:
        context = AuthContext()
        request.state.auth_context = context
    return context


async def get_auth_service(
    session: AsyncSession = Depends(get_auth_session),
    config: AuthConfig = Depends(get_auth_config),
    jwt_manager: JWTManager = Depends(get_jwt_manager),
    dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
) -> AuthService:
    """Construct an AuthService for the current request."""

    repository = AuthRepository(session)
    return AuthService(
        config=config,
        repository=repository,
        jwt_manager=jwt_manager,
        email_dispatcher=dispatcher,
    )


async def get_optional_user(
    authorization: Optional[str] = Header(default=None),
    service: AuthService = Depends(get_auth_service),
    context: AuthContext = Depends(get_auth_context),
) -> Optional[AuthUser]:
    """Authenticate the bearer access token, returning None when absent or invalid."""

    token = parse_bearer_token(authorization)
    if token is None:
        return None
    try:
        user = await service.authenticate(token)
    except AuthServiceError as exc:
        if exc.reason in {"unauthorized", "forbidden"}:
            return None
        raise _http_error(exc) from exc
    context.authenticate(user, token)
    return user


async def get_current_user(
    current_user: Optional[AuthUser] = Depends(get_optional_user),
) -> AuthUser:
    """Require an authenticated user."""

    if current_user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"token": "Authentication required"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return current_user


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: Dict[str, Any] = Body(...),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Register a new account and email its confirmation code."""

    outcome = validate_register_request(payload)
    if not outcome.ok:
        raise _bad_request(outcome.violations)
    try:
        await service.register(outcome.value)
    except AuthServiceError as exc:
        raise _http_error(exc) from exc
    return MessageResponse(message="Registration successful. Please confirm your email.")


@router.get("/confirm", response_model=MessageResponse)
async def confirm(
    email: str = Query(..., min_length=1),
    code: str = Query(..., min_length=1),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Activate an account from its confirmation link."""

    try:
        await service.confirm_register(email, code)
    except AuthServiceError as exc:
        raise _http_error(exc) from exc
    return MessageResponse(message="Account confirmed")


@router.post("/login", response_model=TokenPair)
async def login(
    payload: Dict[str, Any] = Body(...),
    service: AuthService = Depends(get_auth_service),
) -> TokenPair:
    """Exchange credentials for an access and refresh token."""

    outcome = validate_login_request(payload)
    if not outcome.ok:
        raise _bad_request(outcome.violations)
    try:
        return await service.login(outcome.value)
    except AuthServiceError as exc:
        raise _http_error(exc) from exc


@router.post("/refresh-token", response_model=TokenPair)
async def refresh_token(
    authorization: Optional[str] = Header(default=None),
    service: AuthService = Depends(get_auth_service),
) -> TokenPair:
    """Issue a new access token from a bearer refresh token."""

    try:
        return await service.refresh_token(authorization)
    except AuthServiceError as exc:
        raise _http_error(exc) from exc


@router.post("/logout", response_model=MessageResponse)
async def logout(
    authorization: Optional[str] = Header(default=None),
    service: AuthService = Depends(get_auth_service),
    context: AuthContext = Depends(get_auth_context),
) -> MessageResponse:
    """Revoke the presented token; never fails for missing or unknown tokens."""

    await service.logout(authorization, context)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=SessionStatusResponse)
async def me(current_user: Optional[AuthUser] = Depends(get_optional_user)) -> SessionStatusResponse:
    """Return authentication status for the current session."""

    if current_user is None:
        return SessionStatusResponse(authenticated=False, user=None)
    return SessionStatusResponse(authenticated=True, user=current_user)


__all__ = [
    "router",
    "get_auth_config",
    "get_auth_context",
    "get_auth_service",
    "get_auth_session",
    "get_current_user",
    "get_optional_user",
]
