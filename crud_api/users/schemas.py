from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Mapping

from pydantic import BaseModel, ConfigDict

from ..models import TEXT_MAX_LENGTH

AGE_MIN = 0
AGE_MAX = 150

USER_FIELDS = ("full_name", "study_level", "age")


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _check_text(candidate: Mapping[str, Any], name: str, errors: List[str]) -> None:
    value = candidate.get(name)
    if not isinstance(value, str) or not value.strip():
        errors.append(f"{name} is required and must be a non-empty string")
    elif len(value) > TEXT_MAX_LENGTH:
        errors.append(f"{name} must be at most {TEXT_MAX_LENGTH} characters")


def validate_user(candidate: Any) -> ValidationResult:
    """Check a user payload, collecting every violation in field order.

    Never raises. Anything that is not a mapping is checked as an empty one.
    """
    if not isinstance(candidate, Mapping):
        candidate = {}

    errors: List[str] = []
    _check_text(candidate, "full_name", errors)
    _check_text(candidate, "study_level", errors)

    age = candidate.get("age")
    if age is None:
        errors.append("age is required")
    elif isinstance(age, bool) or not isinstance(age, int):
        errors.append("age must be an integer")
    elif not AGE_MIN <= age <= AGE_MAX:
        errors.append(f"age must be between {AGE_MIN} and {AGE_MAX}")

    return ValidationResult(errors)


class UserFields(BaseModel):
    """The client-writable part of a user, built only from validated payloads."""

    full_name: str
    study_level: str
    age: int

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "UserFields":
        return cls(**{name: payload[name] for name in USER_FIELDS})


class User(UserFields):
    id: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


def payload_summary(payload: Any) -> dict:
    """The fields of a request body worth logging; tolerates non-object bodies."""
    if not isinstance(payload, Mapping):
        return {}
    return {name: payload.get(name) for name in USER_FIELDS}


__all__ = ["ValidationResult", "validate_user", "UserFields", "User", "payload_summary"]
