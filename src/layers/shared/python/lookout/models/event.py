"""Custom event and event definition models.

DynamoDB keys:
    Event:
        PK: SITE#{site_id}#EVENTS
        SK: {created_at}#{id}
    EventDefinition:
        PK: SITE#{site_id}
        SK: EVENTDEF#{name}
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel as PydanticBaseModel, Field, model_validator

from lookout.models.base import BaseModel, sort_key_timestamp

# A sanitized property value. bool is listed first so Pydantic keeps
# True/False as booleans instead of coercing them to 1/0.
PropertyValue = bool | int | float | str

DEFAULT_FIELD_MAX_LENGTH = 500


class FieldType(str, Enum):
    """Declared type of an event property."""

    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"


class EventField(PydanticBaseModel):
    """One declared property of an event."""

    key: str = Field(..., min_length=1, max_length=64)
    type: FieldType = FieldType.STRING
    required: bool = False
    max_length: int = DEFAULT_FIELD_MAX_LENGTH


class EventDefinition(BaseModel):
    """Schema for a named custom event on a site.

    Managed by the schema collaborator; ingestion only reads it.
    """

    site_id: str
    name: str = Field(..., min_length=1, max_length=64)
    fields: list[EventField] = Field(default_factory=list)

    def get_pk(self) -> str:
        """Get partition key: SITE#{site_id}."""
        return f"SITE#{self.site_id}"

    def get_sk(self) -> str:
        """Get sort key: EVENTDEF#{name}."""
        return f"EVENTDEF#{self.name}"


class Event(BaseModel):
    """One custom event occurrence. Immutable once written."""

    site_id: str
    session_id: str | None = None
    visitor_id: str
    name: str
    path: str = ""
    properties: dict[str, PropertyValue] = Field(default_factory=dict)
    property_types: dict[str, FieldType] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def restore_float_properties(cls, data: Any) -> Any:
        """Turn whole numbers back into floats for float-typed properties.

        DynamoDB normalizes numbers, so a stored 10.0 reads back as 10.
        """
        if not isinstance(data, dict):
            return data
        types = data.get("property_types") or {}
        properties = data.get("properties")
        if not types or not isinstance(properties, dict):
            return data

        restored = {}
        for key, value in properties.items():
            if types.get(key) == FieldType.FLOAT and type(value) is int:
                value = float(value)
            restored[key] = value
        return {**data, "properties": restored}

    def get_pk(self) -> str:
        """Get partition key: SITE#{site_id}#EVENTS."""
        return f"SITE#{self.site_id}#EVENTS"

    def get_sk(self) -> str:
        """Get sort key ordered by creation time."""
        return f"{sort_key_timestamp(self.created_at)}#{self.id}"
