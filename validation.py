"""Sanitizers and validators for every user-supplied field.

Each validator takes a raw value from a form or JSON body, returns the
normalized value, or raises ValidationError. Raw values are first classified
with ``classify`` so a validator only ever sees a ``str`` or an ``Absent``
marker. Over-long strings are rejected rather than truncated.
"""

import re
from enum import Enum
from typing import Optional, Union

from config import Settings

SQL_KEYWORD_PATTERN = re.compile(
    r"\b(SELECT|INSERT|UPDATE|DELETE|DROP|UNION|EXEC|EXECUTE)\b", re.IGNORECASE
)
_DIGITS = re.compile(r"[0-9]+")
# Largest value an SQLite INTEGER column can hold
MAX_ID = 2**63 - 1


class ValidationError(Exception):
    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(message)


class Absent(Enum):
    MISSING = "missing"
    WRONG_TYPE = "wrong_type"


FieldInput = Union[str, Absent]


def classify(raw) -> FieldInput:
    if raw is None:
        return Absent.MISSING
    if isinstance(raw, str):
        return raw
    return Absent.WRONG_TYPE


def sanitize_string(value: str) -> str:
    """Strip NUL bytes and surrounding whitespace."""
    return value.replace("\x00", "").strip()


def validate_credential_field(raw, field: str, settings: Settings) -> str:
    value = classify(raw)
    if value is Absent.WRONG_TYPE:
        raise ValidationError(field, "Invalid credentials format")
    if value is Absent.MISSING or not value:
        raise ValidationError(field, "Username and password are required")
    if len(value) > settings.max_credential_length:
        raise ValidationError(field, "Credentials too long")
    value = sanitize_string(value)
    if not value:
        raise ValidationError(field, "Username and password are required")
    # Bounds the session token, which embeds the credentials
    if len(value.encode("utf-8")) > settings.max_credential_bytes:
        raise ValidationError(field, "Credentials too long")
    return value


def validate_credentials(username, password, settings: Settings) -> tuple[str, str]:
    return (
        validate_credential_field(username, "username", settings),
        validate_credential_field(password, "password", settings),
    )


def validate_symptom_name(raw, settings: Settings) -> str:
    value = classify(raw)
    if isinstance(value, Absent) or not value:
        raise ValidationError("name", "Symptom name is required")
    value = sanitize_string(value)
    if not value:
        raise ValidationError("name", "Symptom name cannot be empty")
    if len(value) > settings.max_symptom_name_length:
        raise ValidationError(
            "name",
            f"Symptom name must be at most {settings.max_symptom_name_length} characters",
        )
    if SQL_KEYWORD_PATTERN.search(value):
        raise ValidationError("name", "Invalid characters in symptom name")
    return value


def validate_notes(raw, settings: Settings) -> Optional[str]:
    value = classify(raw)
    if value is Absent.MISSING:
        return None
    if value is Absent.WRONG_TYPE:
        raise ValidationError("notes", "Notes must be a string")
    value = sanitize_string(value)
    if not value:
        return None
    if len(value) > settings.max_note_length:
        raise ValidationError(
            "notes", f"Notes must be at most {settings.max_note_length} characters"
        )
    return value


def validate_id(raw, field: str = "id") -> int:
    # bool is an int subclass; True must not become id 1
    if isinstance(raw, int) and not isinstance(raw, bool):
        num = raw
    elif isinstance(raw, str) and _DIGITS.fullmatch(raw.strip()):
        digits = raw.strip()
        if len(digits) > len(str(MAX_ID)):
            raise ValidationError(field, "Invalid ID")
        num = int(digits)
    else:
        raise ValidationError(field, "Invalid ID")
    if num < 1 or num > MAX_ID:
        raise ValidationError(field, "Invalid ID")
    return num


def validate_flag(raw) -> int:
    """Checkbox value: 'on' when ticked, absent otherwise."""
    return 1 if raw == "on" else 0
