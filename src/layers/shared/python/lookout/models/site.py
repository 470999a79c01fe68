"""Site model.

Sites are owned by the site-management collaborator; the analytics core only
reads them, by public key during ingestion and by ID during reporting.

DynamoDB keys:
    PK: SITE#{id}
    SK: SITE#{id}
    GSI1PK: SITEKEY#{public_key}
    GSI1SK: SITE#{id}
"""

import secrets

from pydantic import Field, field_validator

from lookout.models.base import BaseModel


def generate_public_key() -> str:
    """Generate a public site key for the tracking snippet."""
    return secrets.token_urlsafe(16)


def generate_salt() -> str:
    """Generate a per-site secret used to key visitor fingerprints."""
    return secrets.token_hex(32)


class Site(BaseModel):
    """A tracked website."""

    workspace_id: str = Field(..., description="Owning workspace, used for reporting access")
    name: str = Field(..., min_length=1, max_length=100)
    public_key: str = Field(default_factory=generate_public_key)
    salt: str = Field(default_factory=generate_salt)

    # Tracking options
    track_country: bool = False
    domains: list[str] = Field(default_factory=list, description="Hosts allowed to send pings")
    blocked_ips: list[str] = Field(default_factory=list)
    blocked_countries: list[str] = Field(default_factory=list, description="ISO country codes")

    @field_validator("domains")
    @classmethod
    def normalize_domains(cls, v: list[str]) -> list[str]:
        """Normalize domains to lowercase, strip whitespace."""
        return [d.lower().strip() for d in v if d and d.strip()]

    @field_validator("blocked_countries")
    @classmethod
    def normalize_countries(cls, v: list[str]) -> list[str]:
        """Normalize country codes to uppercase."""
        return [c.upper().strip() for c in v if c and c.strip()]

    @property
    def needs_country(self) -> bool:
        """Whether ingestion has to resolve client countries for this site."""
        return self.track_country or bool(self.blocked_countries)

    def get_pk(self) -> str:
        """Get partition key: SITE#{id}."""
        return f"SITE#{self.id}"

    def get_sk(self) -> str:
        """Get sort key: SITE#{id}."""
        return f"SITE#{self.id}"

    def get_gsi1_keys(self) -> dict[str, str]:
        """Get GSI1 keys for lookup by public key."""
        return {
            "GSI1PK": f"SITEKEY#{self.public_key}",
            "GSI1SK": f"SITE#{self.id}",
        }
