"""Tests for the JWT codec and confirmation code generation."""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

import pytest

from backend.app.auth.confirmation import generate_confirmation_code
from backend.app.auth.enums import TokenKind, UserRole
from backend.app.auth.models import User
from backend.app.auth.tokens import (
    ExpiredTokenError,
    JWTManager,
    MalformedTokenError,
    TokenCodecError,
    parse_bearer_token,
)
from backend.app.config import AuthJWTConfig


def _manager() -> JWTManager:
    return JWTManager(
        AuthJWTConfig(
            secret_key="codec-secret-key-that-is-long-enough-123456",
            algorithm="HS256",
            access_token_expires_minutes=5,
            refresh_token_expires_minutes=60,
        )
    )


def _user(user_id: str = "user-1") -> User:
    return User(id=user_id, email=f"{user_id}@example.com", role=UserRole.USER)


def test_issue_and_extract_identity() -> None:
    manager = _manager()
    issued = manager.issue(_user(), TokenKind.ACCESS)

    assert manager.extract_identity(issued.token) == "user-1"
    payload = manager.decode(issued.token)
    assert payload["kind"] == "access"
    assert payload["email"] == "user-1@example.com"


def test_refresh_tokens_outlive_access_tokens() -> None:
    manager = _manager()
    now = datetime.now(timezone.utc)
    access = manager.issue(_user(), TokenKind.ACCESS, issued_at=now)
    refresh = manager.issue(_user(), TokenKind.REFRESH, issued_at=now)

    assert access.expires_at == now + timedelta(minutes=5)
    assert refresh.expires_at == now + timedelta(minutes=60)


def test_tokens_issued_together_are_distinct() -> None:
    manager = _manager()
    now = datetime.now(timezone.utc)
    first = manager.issue(_user(), TokenKind.ACCESS, issued_at=now)
    second = manager.issue(_user(), TokenKind.ACCESS, issued_at=now)

    assert first.token != second.token


def test_is_valid_checks_subject_and_kind() -> None:
    manager = _manager()
    owner = _user("owner")
    issued = manager.issue(owner, TokenKind.REFRESH)

    assert manager.is_valid(issued.token, owner)
    assert manager.is_valid(issued.token, owner, kind=TokenKind.REFRESH)
    assert not manager.is_valid(issued.token, owner, kind=TokenKind.ACCESS)
    assert not manager.is_valid(issued.token, _user("someone-else"))


def test_expired_token_is_rejected() -> None:
    manager = _manager()
    user = _user()
    issued = manager.issue(
        user,
        TokenKind.ACCESS,
        expires_delta=timedelta(seconds=1),
        issued_at=datetime.now(timezone.utc) - timedelta(seconds=30),
    )

    with pytest.raises(ExpiredTokenError):
        manager.extract_identity(issued.token)
    assert not manager.is_valid(issued.token, user)


def test_tampered_and_foreign_tokens_are_malformed() -> None:
    manager = _manager()
    issued = manager.issue(_user(), TokenKind.ACCESS)

    with pytest.raises(MalformedTokenError):
        manager.extract_identity(issued.token[:-4] + "abcd")
    with pytest.raises(TokenCodecError):
        manager.extract_identity("not-a-jwt")

    other = JWTManager(
        AuthJWTConfig(
            secret_key="a-completely-different-secret-key-987654321",
            access_token_expires_minutes=5,
            refresh_token_expires_minutes=60,
        )
    )
    with pytest.raises(MalformedTokenError):
        other.extract_identity(issued.token)


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        (None, None),
        ("", None),
        ("Basic abc", None),
        ("bearer abc", None),
        ("Bearer ", None),
        ("Bearer abc.def.ghi", "abc.def.ghi"),
    ],
)
def test_parse_bearer_token(header, expected) -> None:
    assert parse_bearer_token(header) == expected


def test_confirmation_code_is_32_lowercase_hex_characters() -> None:
    codes = {generate_confirmation_code() for _ in range(20)}

    assert len(codes) == 20
    for code in codes:
        assert re.fullmatch(r"[0-9a-f]{32}", code)
