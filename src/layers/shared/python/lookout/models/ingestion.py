"""Request models for the public collect endpoint."""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel as PydanticBaseModel, ConfigDict, Field, field_validator, model_validator


class CollectRequest(PydanticBaseModel):
    """Body sent by the tracking snippet.

    A body with ``name`` set is a custom event; otherwise it is a page view
    and ``path`` is required.
    """

    model_config = ConfigDict(extra="ignore")

    site_key: str = Field(..., min_length=1, max_length=128)
    path: str = Field(default="", max_length=2048)
    title: str = Field(default="", max_length=512)
    referrer: str = Field(default="", max_length=2048)
    utm_source: str = Field(default="", max_length=256)
    utm_medium: str = Field(default="", max_length=256)
    utm_campaign: str = Field(default="", max_length=256)
    screen_width: int = Field(default=0, ge=0, le=100_000)

    # Custom events only
    name: str | None = Field(default=None, max_length=64)
    properties: str | dict[str, Any] | None = None

    @field_validator("site_key", "path", "title", "referrer", mode="before")
    @classmethod
    def strip_strings(cls, v):
        """Trim surrounding whitespace; treat null as empty."""
        if v is None:
            return ""
        if isinstance(v, str):
            return v.strip()
        return v

    @model_validator(mode="after")
    def require_path_for_page_views(self) -> "CollectRequest":
        """Page views must say which page was viewed."""
        if not self.is_event and not self.path:
            raise ValueError("path is required for page views")
        return self

    @property
    def is_event(self) -> bool:
        """Whether this body describes a custom event."""
        return bool(self.name)


@dataclass(frozen=True)
class ClientContext:
    """Transport-level facts about the sender, taken from request headers."""

    client_ip: str = ""
    user_agent: str = ""
    origin: str = ""
    referer: str = ""
