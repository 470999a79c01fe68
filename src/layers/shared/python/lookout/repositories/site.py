"""Site repository (read side used by ingestion and reporting)."""

from typing import Any

import structlog
from botocore.exceptions import ClientError

from lookout.models.site import Site
from lookout.repositories.base import BaseRepository

logger = structlog.get_logger()


class SiteRepository(BaseRepository[Site]):
    """Repository for Site entities."""

    def __init__(self, table_name: str | None = None):
        """Initialize site repository."""
        super().__init__(Site, table_name)

    def get_by_id(self, site_id: str) -> Site | None:
        """Get site by ID.

        Args:
            site_id: The site ID.

        Returns:
            Site or None if not found.
        """
        return self.get(pk=f"SITE#{site_id}", sk=f"SITE#{site_id}")

    def get_by_public_key(self, public_key: str) -> Site | None:
        """Get site by the public key embedded in the tracking snippet.

        Uses GSI1 for lookup.

        Args:
            public_key: The site's public key.

        Returns:
            Site or None if not found.
        """
        if not public_key:
            return None
        items, _ = self.query(pk=f"SITEKEY#{public_key}", index_name="GSI1", limit=1)
        return items[0] if items else None

    def create_site(self, site: Site) -> Site:
        """Create a new site record."""
        self.put(site)
        logger.info("Site created", site_id=site.id, workspace_id=site.workspace_id)
        return site

    def any_needs_country(self) -> bool:
        """Check whether any site tracks or blocks countries.

        Sites have no listing index, so this scans site records and stops at
        the first match.
        """
        scan_kwargs: dict[str, Any] = {
            "FilterExpression": "begins_with(SK, :prefix)",
            "ExpressionAttributeValues": {":prefix": "SITE#"},
        }
        try:
            while True:
                response = self.table.scan(**scan_kwargs)
                for item in response.get("Items", []):
                    if Site.from_dynamodb(item).needs_country:
                        return True

                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    return False
                scan_kwargs["ExclusiveStartKey"] = last_key
        except ClientError as e:
            logger.error("Failed to scan sites for GeoIP requirement", error=str(e))
            raise
