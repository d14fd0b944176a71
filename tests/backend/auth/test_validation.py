"""Tests for explicit request validation."""
from __future__ import annotations

from backend.app.auth.validation import (
    FIELD_MESSAGES,
    validate_login_request,
    validate_register_request,
)


def test_valid_registration_parses_aliases() -> None:
    outcome = validate_register_request(
        {"email": "reader@example.com", "password": "long-enough", "firstName": " Ada ", "lastName": "Lovelace"}
    )

    assert outcome.ok
    assert outcome.violations == {}
    assert outcome.value.first_name == "Ada"
    assert outcome.value.last_name == "Lovelace"


def test_registration_violations_are_aggregated() -> None:
    outcome = validate_register_request({"email": "broken", "password": "x" * 73})

    assert not outcome.ok
    assert outcome.value is None
    assert outcome.violations == {
        "email": FIELD_MESSAGES["email"],
        "password": FIELD_MESSAGES["password"],
        "firstName": FIELD_MESSAGES["firstName"],
        "lastName": FIELD_MESSAGES["lastName"],
    }


def test_name_length_limit() -> None:
    outcome = validate_register_request(
        {"email": "reader@example.com", "password": "long-enough", "firstName": "A" * 101, "lastName": "B"}
    )

    assert set(outcome.violations) == {"firstName"}


def test_non_object_body_is_a_single_violation() -> None:
    outcome = validate_register_request(["not", "an", "object"])

    assert outcome.violations == {"body": "Request body must be a JSON object"}


def test_login_requires_both_fields() -> None:
    outcome = validate_login_request({"email": ""})

    assert set(outcome.violations) == {"email", "password"}
