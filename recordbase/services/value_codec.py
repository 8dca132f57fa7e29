"""
Type-aware codec for property values.

Every property value is persisted as a string in ``PropertyInstance.value``.
This module converts between that storage form and typed Python values,
validates incoming values against a property definition, and renders values
for people to read.

    cast_value            stored string -> typed value (None when empty/invalid)
    format_value          typed value   -> stored string
    validate_value        incoming value -> ValidationResult
    validate_stored_value string-encoded default value -> bool
    format_display_value  typed value   -> human readable string

Typed representations: string -> str, number -> int | float, boolean -> bool,
date -> datetime.date, datetime -> datetime.datetime, time -> datetime.time,
entity -> uuid.UUID.
"""

import math
import re
import uuid
from collections.abc import Sequence
from datetime import date, datetime, time
from typing import Any, NamedTuple

from recordbase.models.enums import PropertyType

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9]):([0-5][0-9])$")
# Default values may omit the seconds
STORED_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(:([0-5]\d))?$")

REQUIRED_MESSAGE = "This field is required"

TYPE_ERROR_MESSAGES = {
    PropertyType.STRING: "Must be text",
    PropertyType.NUMBER: "Must be a valid number",
    PropertyType.BOOLEAN: "Must be true or false",
    PropertyType.DATE: "Must be a valid date (YYYY-MM-DD)",
    PropertyType.DATETIME: "Must be a valid date and time",
    PropertyType.TIME: "Must be a valid time (HH:MM:SS)",
    PropertyType.ENTITY: "Must be a valid entity reference",
}


class ValidationResult(NamedTuple):
    valid: bool
    error: str | None = None


_OK = ValidationResult(True)


# --- Parsing helpers -------------------------------------------------------


def parse_number(raw: str) -> int | float | None:
    text = raw.strip()
    if not text or "_" in text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_date(raw: str) -> date | None:
    if not DATE_RE.match(raw):
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return None


def parse_datetime(raw: str) -> datetime | None:
    try:
        return datetime.fromisoformat(raw.strip())
    except ValueError:
        return None


def parse_time(raw: str) -> time | None:
    match = TIME_RE.match(raw)
    if not match:
        return None
    hours, minutes, seconds = (int(part) for part in match.groups())
    return time(hours, minutes, seconds)


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


# --- Cast / format ---------------------------------------------------------


def cast_value(raw: str | None, property_type: PropertyType | str) -> Any:
    """Convert a stored string to its typed value, or None if empty/invalid."""
    if raw is None or raw == "":
        return None

    property_type = PropertyType(property_type)

    if property_type == PropertyType.STRING:
        return raw
    if property_type == PropertyType.NUMBER:
        return parse_number(raw)
    if property_type == PropertyType.BOOLEAN:
        return raw in ("true", "1")
    if property_type == PropertyType.DATE:
        return parse_date(raw)
    if property_type == PropertyType.DATETIME:
        return parse_datetime(raw)
    if property_type == PropertyType.TIME:
        # Default values may be stored without seconds
        return parse_time(raw) or parse_time(f"{raw}:00")
    if property_type == PropertyType.ENTITY:
        return uuid.UUID(raw) if UUID_RE.match(raw) else None
    return raw


def _format_number(value: Any) -> str | None:
    if isinstance(value, str):
        value = parse_number(value)
    if not _is_number(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_value(value: Any, property_type: PropertyType | str) -> str | None:
    """
    Encode a typed value for storage.

    Strings that are already in storage form are normalized (zero-padded
    times, lower-case UUIDs); strings that cannot be parsed are stored as given,
    since validation runs before any write.
    """
    if value is None:
        return None

    property_type = PropertyType(property_type)

    if property_type == PropertyType.STRING:
        return str(value)

    if property_type == PropertyType.NUMBER:
        return _format_number(value)

    if property_type == PropertyType.BOOLEAN:
        if isinstance(value, str):
            return "true" if value in ("true", "1") else "false"
        return "true" if value else "false"

    if property_type == PropertyType.DATE:
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        parsed = parse_date(str(value))
        return parsed.isoformat() if parsed else str(value)

    if property_type == PropertyType.DATETIME:
        if isinstance(value, datetime):
            return value.isoformat()
        parsed = parse_datetime(str(value))
        return parsed.isoformat() if parsed else str(value)

    if property_type == PropertyType.TIME:
        if isinstance(value, time):
            return value.strftime("%H:%M:%S")
        parsed = parse_time(str(value))
        return parsed.strftime("%H:%M:%S") if parsed else str(value)

    if property_type == PropertyType.ENTITY:
        if isinstance(value, uuid.UUID):
            return str(value)
        text = str(value)
        return str(uuid.UUID(text)) if UUID_RE.match(text) else text

    return str(value)


# --- Validation ------------------------------------------------------------


def _matches_type(value: Any, property_type: PropertyType) -> bool:
    if property_type == PropertyType.STRING:
        return isinstance(value, str)

    if property_type == PropertyType.NUMBER:
        if isinstance(value, str):
            return parse_number(value) is not None
        return _is_number(value)

    if property_type == PropertyType.BOOLEAN:
        return isinstance(value, bool)

    if property_type == PropertyType.DATE:
        if isinstance(value, datetime):
            return False
        if isinstance(value, date):
            return True
        return isinstance(value, str) and parse_date(value) is not None

    if property_type == PropertyType.DATETIME:
        if isinstance(value, datetime):
            return True
        return isinstance(value, str) and parse_datetime(value) is not None

    if property_type == PropertyType.TIME:
        if isinstance(value, time):
            return True
        return isinstance(value, str) and TIME_RE.match(value) is not None

    if property_type == PropertyType.ENTITY:
        if isinstance(value, uuid.UUID):
            return True
        return isinstance(value, str) and UUID_RE.match(value) is not None

    return False


def _validate_single(
    value: Any, property_type: PropertyType, is_required: bool
) -> ValidationResult:
    if _is_empty(value):
        return ValidationResult(False, REQUIRED_MESSAGE) if is_required else _OK

    if not _matches_type(value, property_type):
        return ValidationResult(False, TYPE_ERROR_MESSAGES[property_type])
    return _OK


def validate_value(
    value: Any,
    property_type: PropertyType | str,
    is_required: bool,
    is_list: bool,
) -> ValidationResult:
    """
    Check an incoming value against a property definition.

    List properties take a sequence; each element must be a non-empty value of
    the property type, and an empty sequence is rejected only when the
    property is required.
    """
    property_type = PropertyType(property_type)

    if not is_list:
        return _validate_single(value, property_type, is_required)

    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        return ValidationResult(False, "Value must be a list for list properties")

    if is_required and len(value) == 0:
        return ValidationResult(False, REQUIRED_MESSAGE)

    for item in value:
        result = _validate_single(item, property_type, True)
        if not result.valid:
            return result
    return _OK


def validate_stored_value(raw: str | None, property_type: PropertyType | str) -> bool:
    """Check a string-encoded value such as a property's default value."""
    if not raw:
        return True

    property_type = PropertyType(property_type)

    if property_type == PropertyType.STRING:
        return True
    if property_type == PropertyType.NUMBER:
        return parse_number(raw) is not None
    if property_type == PropertyType.BOOLEAN:
        return raw in ("true", "false")
    if property_type == PropertyType.DATE:
        return parse_date(raw) is not None
    if property_type == PropertyType.DATETIME:
        return parse_datetime(raw) is not None
    if property_type == PropertyType.TIME:
        return STORED_TIME_RE.match(raw) is not None
    if property_type == PropertyType.ENTITY:
        return UUID_RE.match(raw) is not None
    return False


# --- Display ---------------------------------------------------------------


def _local(value: datetime) -> datetime:
    # Aware values are shown in server local time; naive ones are taken as-is
    return value.astimezone() if value.tzinfo is not None else value


def _display_time(value: Any) -> str:
    if isinstance(value, datetime):
        return _local(value).strftime("%H:%M")
    if isinstance(value, time):
        return value.strftime("%H:%M")

    text = str(value)
    if "T" in text:
        parsed = parse_datetime(text)
        return _local(parsed).strftime("%H:%M") if parsed else text
    parts = text.split(":")
    if len(parts) >= 2:
        return f"{parts[0].zfill(2)}:{parts[1].zfill(2)}"
    return text


def format_display_value(value: Any, property_type: PropertyType | str) -> str:
    """Render a value for people: Yes/No, dd/MM/yyyy, dd/MM/yyyy HH:mm, HH:mm."""
    if value is None:
        return ""

    property_type = PropertyType(property_type)

    if property_type == PropertyType.BOOLEAN:
        if isinstance(value, str):
            value = cast_value(value, PropertyType.BOOLEAN)
        return "Yes" if value else "No"

    if property_type == PropertyType.DATE:
        if isinstance(value, datetime):
            return _local(value).strftime("%d/%m/%Y")
        if isinstance(value, date):
            return value.strftime("%d/%m/%Y")
        parsed = parse_date(str(value)) or parse_datetime(str(value))
        return parsed.strftime("%d/%m/%Y") if parsed else str(value)

    if property_type == PropertyType.DATETIME:
        parsed = value if isinstance(value, datetime) else parse_datetime(str(value))
        return _local(parsed).strftime("%d/%m/%Y %H:%M") if parsed else str(value)

    if property_type == PropertyType.TIME:
        return _display_time(value)

    if property_type == PropertyType.NUMBER:
        return _format_number(value) or str(value)

    return str(value)
