"""Page view model.

Immutable once written. Carries a snapshot of the owning session's
referrer, device and country so dimensional filters apply to page views
without a join.

DynamoDB keys:
    PK: SITE#{site_id}#PAGEVIEWS
    SK: {created_at}#{id}
"""

from pydantic import Field

from lookout.models.base import BaseModel, sort_key_timestamp


class PageView(BaseModel):
    """One page render."""

    site_id: str
    session_id: str
    visitor_id: str
    path: str = Field(..., max_length=2048)
    title: str = Field(default="", max_length=512)
    referrer: str = Field(default="", max_length=2048)
    device: str = ""
    country: str = ""

    def get_pk(self) -> str:
        """Get partition key: SITE#{site_id}#PAGEVIEWS."""
        return f"SITE#{self.site_id}#PAGEVIEWS"

    def get_sk(self) -> str:
        """Get sort key ordered by creation time."""
        return f"{sort_key_timestamp(self.created_at)}#{self.id}"
