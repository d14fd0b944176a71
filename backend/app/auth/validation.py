"""Explicit request validation producing field violation maps."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from backend.app.auth.schemas import LoginRequest, RegisterRequest

ModelT = TypeVar("ModelT", bound=BaseModel)

FIELD_MESSAGES: Dict[str, str] = {
    "email": "Email must be a valid address with at most 320 characters",
    "password": "Password must have at least 8 characters and at most 72 characters",
    "firstName": "First name must have at least 1 character and at most 100 characters",
    "lastName": "Last name must have at least 1 character and at most 100 characters",
}

LOGIN_FIELD_MESSAGES: Dict[str, str] = {
    "email": "Email is required",
    "password": "Password is required",
}


@dataclass(frozen=True)
class ValidationOutcome(Generic[ModelT]):
    """Either a parsed request or the violations that prevented parsing."""

    value: Optional[ModelT] = None
    violations: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.violations


def violations_from_error(
    error: ValidationError, messages: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """Collapse a pydantic error into one message per wire field."""

    violations: Dict[str, str] = {}
    for detail in error.errors():
        location = detail.get("loc") or ()
        field_name = ".".join(str(part) for part in location) or "body"
        if field_name in violations:
            continue
        if messages and field_name in messages:
            violations[field_name] = messages[field_name]
        else:
            violations[field_name] = str(detail.get("msg", "Invalid value"))
    return violations


def validate_payload(
    model: Type[ModelT],
    payload: Any,
    messages: Optional[Mapping[str, str]] = None,
) -> ValidationOutcome[ModelT]:
    """Validate ``payload`` against ``model`` without raising."""

    if not isinstance(payload, Mapping):
        return ValidationOutcome(violations={"body": "Request body must be a JSON object"})
    try:
        value = model.model_validate(dict(payload))
    except ValidationError as exc:
        return ValidationOutcome(violations=violations_from_error(exc, messages))
    return ValidationOutcome(value=value)


def validate_register_request(payload: Any) -> ValidationOutcome[RegisterRequest]:
    """Validate a registration body."""

    return validate_payload(RegisterRequest, payload, FIELD_MESSAGES)


def validate_login_request(payload: Any) -> ValidationOutcome[LoginRequest]:
    """Validate a login body."""

    return validate_payload(LoginRequest, payload, LOGIN_FIELD_MESSAGES)


__all__ = [
    "FIELD_MESSAGES",
    "ValidationOutcome",
    "validate_login_request",
    "validate_payload",
    "validate_register_request",
    "violations_from_error",
]
