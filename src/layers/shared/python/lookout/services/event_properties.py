"""Validation of custom event property bags against their declared fields."""

import json
from typing import Any

import structlog

from lookout.models.event import DEFAULT_FIELD_MAX_LENGTH, EventField, FieldType, PropertyValue

logger = structlog.get_logger()


def _matches_type(value: Any, field_type: str) -> bool:
    # bool is an int subclass; never let True pass as a number
    if field_type == FieldType.STRING.value:
        return isinstance(value, str)
    if field_type == FieldType.BOOL.value:
        return isinstance(value, bool)
    if field_type == FieldType.INT.value:
        if isinstance(value, bool):
            return False
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if field_type == FieldType.FLOAT.value:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    return False


def sanitize_properties(
    raw: str | dict | None,
    fields: list[EventField],
) -> tuple[dict[str, PropertyValue] | None, bool]:
    """Validate raw event properties against an event's declared fields.

    Anything outside the declared shape rejects the whole bag: undeclared
    keys, wrong types, strings over the field's max length, nested values
    and missing required fields. Nothing is coerced except whole-number
    floats for int fields (JSON has one number type).

    Args:
        raw: JSON object text or an already-decoded dict.
        fields: Declared fields for the event.

    Returns:
        Tuple of (sanitized properties, accepted). Properties are None when
        the bag is rejected.
    """
    if raw is None or raw == "":
        props: Any = {}
    elif isinstance(raw, str):
        try:
            props = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Event properties are not valid JSON")
            return None, False
    else:
        props = raw

    if not isinstance(props, dict):
        return None, False

    declared = {field.key: field for field in fields}
    sanitized: dict[str, PropertyValue] = {}

    for key, value in props.items():
        field = declared.get(key)
        if field is None:
            logger.debug("Undeclared event property", key=key)
            return None, False

        field_type = field.type.value if isinstance(field.type, FieldType) else field.type
        if not _matches_type(value, field_type):
            logger.debug("Event property type mismatch", key=key, expected=field_type)
            return None, False

        if field_type == FieldType.STRING.value:
            max_length = field.max_length if field.max_length > 0 else DEFAULT_FIELD_MAX_LENGTH
            if len(value) > max_length:
                logger.debug("Event property too long", key=key, max_length=max_length)
                return None, False
        elif field_type == FieldType.INT.value:
            value = int(value)
        elif field_type == FieldType.FLOAT.value:
            value = float(value)

        sanitized[key] = value

    for field in fields:
        if field.required and field.key not in sanitized:
            logger.debug("Required event property missing", key=field.key)
            return None, False

    return sanitized, True
