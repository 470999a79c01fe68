"""Base Pydantic models with DynamoDB serialization."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Self

from pydantic import BaseModel as PydanticBaseModel, ConfigDict, Field
from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ULID())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def sort_key_timestamp(value: datetime) -> str:
    """Format a datetime as a fixed-width UTC string for sort keys.

    ``datetime.isoformat`` drops microseconds when they are zero, which
    breaks lexicographic ordering, so keys always carry all six digits.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class BaseModel(PydanticBaseModel):
    """Base model with ID generation and DynamoDB serialization.

    All stored analytics entities inherit from this class. Rows are
    append-mostly, so there is no ``updated_at`` or version counter here;
    sessions track their own ``last_seen_at``.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        validate_assignment=True,
    )

    id: str = Field(default_factory=generate_ulid)
    created_at: datetime = Field(default_factory=utc_now)

    def to_dynamodb(self) -> dict[str, Any]:
        """Serialize model to DynamoDB item format.

        Datetimes become ISO strings via ``mode="json"``; floats are then
        converted to ``Decimal`` as DynamoDB requires.
        """
        data = self.model_dump(mode="json", by_alias=True)
        return self._serialize_value(data)

    @classmethod
    def _serialize_value(cls, value: Any) -> Any:
        """Recursively convert floats to Decimal and drop None values."""
        if isinstance(value, dict):
            return {k: cls._serialize_value(v) for k, v in value.items() if v is not None}
        if isinstance(value, list):
            return [cls._serialize_value(item) for item in value]
        if isinstance(value, float):
            return Decimal(str(value))
        return value

    @classmethod
    def from_dynamodb(cls, item: dict[str, Any]) -> Self:
        """Deserialize a DynamoDB item to a model instance.

        Only Decimals need converting back; Pydantic parses ISO strings into
        the declared datetime fields, so free-form strings (paths, event
        properties) are never mistaken for timestamps.
        """
        data = cls._deserialize_value(item)
        return cls.model_validate(data)

    @classmethod
    def _deserialize_value(cls, value: Any) -> Any:
        """Recursively convert Decimals back to int or float.

        A Decimal with a fractional exponent (``10.0``) stays a float.
        """
        if isinstance(value, dict):
            return {k: cls._deserialize_value(v) for k, v in value.items()}
        if isinstance(value, list):
            return [cls._deserialize_value(item) for item in value]
        if isinstance(value, Decimal):
            if value.as_tuple().exponent >= 0:
                return int(value)
            return float(value)
        return value

    def get_pk(self) -> str:
        """Get the partition key for this entity."""
        raise NotImplementedError("Subclasses must implement get_pk()")

    def get_sk(self) -> str:
        """Get the sort key for this entity."""
        raise NotImplementedError("Subclasses must implement get_sk()")

    def get_keys(self) -> dict[str, str]:
        """Get both PK and SK as a dictionary."""
        return {"PK": self.get_pk(), "SK": self.get_sk()}

    def get_gsi1_keys(self) -> dict[str, str] | None:
        """Get GSI1 keys, if this entity is indexed there."""
        return None
