"""HTTP-level tests for the authentication router."""
from __future__ import annotations

from pathlib import Path
from typing import List, Tuple

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from backend.app.auth.router import get_current_user
from backend.app.auth.schemas import AuthUser
from backend.app.config import (
    AppConfig,
    AuthConfig,
    AuthConfirmationConfig,
    AuthJWTConfig,
    AuthSMTPConfig,
    ServiceConfig,
)
from backend.app.main import create_app


class RecordingDispatcher:
    """Capture confirmation codes so tests can follow the emailed link."""

    def __init__(self) -> None:
        self.messages: List[Tuple[str, str]] = []

    async def send_confirmation_email(
        self, recipient: str, first_name: str, last_name: str, code: str
    ) -> bool:
        self.messages.append((recipient, code))
        return True


def _app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        service=ServiceConfig(name="LibraryManager Auth", version="test"),
        auth=AuthConfig(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}",
            jwt=AuthJWTConfig(
                secret_key="router-secret-key-that-is-long-enough-123456",
                algorithm="HS256",
                access_token_expires_minutes=5,
                refresh_token_expires_minutes=60,
            ),
            confirmation=AuthConfirmationConfig(link_base_url="https://library.example/confirm"),
            smtp=AuthSMTPConfig(host="localhost", port=1025, from_email="no-reply@library.example"),
        ),
    )


@pytest.fixture()
def client_and_dispatcher(tmp_path: Path):
    dispatcher = RecordingDispatcher()
    app = create_app(_app_config(tmp_path), email_dispatcher=dispatcher)

    @app.get("/api/books/protected")
    async def protected(user: AuthUser = Depends(get_current_user)) -> dict[str, str]:
        return {"email": user.email}

    with TestClient(app) as client:
        yield client, dispatcher


def _register_and_confirm(client: TestClient, dispatcher: RecordingDispatcher) -> None:
    response = client.post(
        "/api/auth/register",
        json={"email": "a@x.com", "password": "password1", "firstName": "A", "lastName": "B"},
    )
    assert response.status_code == 201
    recipient, code = dispatcher.messages[-1]
    assert recipient == "a@x.com"
    confirmed = client.get("/api/auth/confirm", params={"email": "a@x.com", "code": code})
    assert confirmed.status_code == 200


def _login(client: TestClient) -> dict:
    response = client.post("/api/auth/login", json={"email": "a@x.com", "password": "password1"})
    assert response.status_code == 200
    return response.json()


def test_health_reports_service_identity(client_and_dispatcher) -> None:
    client, _ = client_and_dispatcher

    response = client.get("/health")

    assert response.json() == {"status": "ok", "service": "LibraryManager Auth", "version": "test"}


def test_register_reports_all_field_violations(client_and_dispatcher) -> None:
    client, dispatcher = client_and_dispatcher

    response = client.post(
        "/api/auth/register",
        json={"email": "not-an-email", "password": "short", "firstName": "", "lastName": "B"},
    )

    assert response.status_code == 400
    assert set(response.json()["detail"]) == {"email", "password", "firstName"}
    assert dispatcher.messages == []


def test_register_duplicate_email_returns_email_violation(client_and_dispatcher) -> None:
    client, dispatcher = client_and_dispatcher
    _register_and_confirm(client, dispatcher)

    response = client.post(
        "/api/auth/register",
        json={"email": "a@x.com", "password": "password1", "firstName": "A", "lastName": "B"},
    )

    assert response.status_code == 400
    assert "email" in response.json()["detail"]
    assert len(dispatcher.messages) == 1


def test_login_before_confirmation_is_rejected(client_and_dispatcher) -> None:
    client, _ = client_and_dispatcher
    client.post(
        "/api/auth/register",
        json={"email": "a@x.com", "password": "password1", "firstName": "A", "lastName": "B"},
    )

    response = client.post("/api/auth/login", json={"email": "a@x.com", "password": "password1"})

    assert response.status_code == 401
    assert set(response.json()["detail"]) == {"authentication"}


def test_full_session_lifecycle(client_and_dispatcher) -> None:
    client, dispatcher = client_and_dispatcher
    _register_and_confirm(client, dispatcher)

    tokens = _login(client)
    assert tokens["accessToken"] and tokens["refreshToken"]
    access_header = {"Authorization": f"Bearer {tokens['accessToken']}"}

    me = client.get("/api/auth/me", headers=access_header).json()
    assert me["authenticated"] is True
    assert me["user"]["email"] == "a@x.com"
    assert client.get("/api/books/protected", headers=access_header).status_code == 200

    refreshed = client.post(
        "/api/auth/refresh-token", headers={"Authorization": f"Bearer {tokens['refreshToken']}"}
    )
    assert refreshed.status_code == 200
    body = refreshed.json()
    assert body["refreshToken"] == tokens["refreshToken"]
    assert body["accessToken"] != tokens["accessToken"]
    assert client.get("/api/auth/me", headers=access_header).json()["authenticated"] is False

    new_header = {"Authorization": f"Bearer {body['accessToken']}"}
    logout = client.post("/api/auth/logout", headers=new_header)
    assert logout.status_code == 200
    assert client.get("/api/books/protected", headers=new_header).status_code == 401


def test_second_login_revokes_first_access_token(client_and_dispatcher) -> None:
    client, dispatcher = client_and_dispatcher
    _register_and_confirm(client, dispatcher)

    first = _login(client)
    second = _login(client)

    first_header = {"Authorization": f"Bearer {first['accessToken']}"}
    second_header = {"Authorization": f"Bearer {second['accessToken']}"}
    assert client.get("/api/books/protected", headers=first_header).status_code == 401
    assert client.get("/api/books/protected", headers=second_header).status_code == 200


def test_refresh_without_bearer_header_is_unauthorized(client_and_dispatcher) -> None:
    client, _ = client_and_dispatcher

    assert client.post("/api/auth/refresh-token").status_code == 401
    response = client.post("/api/auth/refresh-token", headers={"Authorization": "Basic abc"})
    assert response.status_code == 401
    assert "token" in response.json()["detail"]


def test_logout_without_token_succeeds(client_and_dispatcher) -> None:
    client, _ = client_and_dispatcher

    assert client.post("/api/auth/logout").status_code == 200
    response = client.post("/api/auth/logout", headers={"Authorization": "Bearer unknown"})
    assert response.status_code == 200


def test_confirm_with_wrong_code_is_bad_request(client_and_dispatcher) -> None:
    client, _ = client_and_dispatcher
    client.post(
        "/api/auth/register",
        json={"email": "a@x.com", "password": "password1", "firstName": "A", "lastName": "B"},
    )

    response = client.get("/api/auth/confirm", params={"email": "a@x.com", "code": "f" * 32})

    assert response.status_code == 400
    assert "url" in response.json()["detail"]
