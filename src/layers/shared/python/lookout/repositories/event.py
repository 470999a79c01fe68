"""Event and event definition repositories."""

from datetime import datetime

from lookout.models.base import sort_key_timestamp
from lookout.models.event import Event, EventDefinition
from lookout.repositories.base import SK_RANGE_END_SUFFIX, BaseRepository


class EventRepository(BaseRepository[Event]):
    """Repository for custom Event rows."""

    def __init__(self, table_name: str | None = None):
        """Initialize event repository."""
        super().__init__(Event, table_name)

    def create_event(self, event: Event) -> Event:
        """Persist a new event."""
        return self.put(event)

    def list_between(
        self,
        site_id: str,
        start: datetime,
        end: datetime,
        name: str | None = None,
    ) -> list[Event]:
        """List events created in [start, end], newest first.

        Args:
            site_id: The site ID.
            start: Range start.
            end: Range end.
            name: Only return events with this name.
        """
        events = self.query_all_between(
            pk=f"SITE#{site_id}#EVENTS",
            sk_start=sort_key_timestamp(start),
            sk_end=sort_key_timestamp(end) + SK_RANGE_END_SUFFIX,
        )
        if name:
            events = [e for e in events if e.name == name]
        events.reverse()
        return events


class EventDefinitionRepository(BaseRepository[EventDefinition]):
    """Repository for per-site event schemas."""

    def __init__(self, table_name: str | None = None):
        """Initialize event definition repository."""
        super().__init__(EventDefinition, table_name)

    def get_definition(self, site_id: str, name: str) -> EventDefinition | None:
        """Get the definition of a named event, or None if undeclared."""
        if not name:
            return None
        return self.get(pk=f"SITE#{site_id}", sk=f"EVENTDEF#{name}")

    def list_definitions(self, site_id: str) -> list[EventDefinition]:
        """List every event definition for a site."""
        items, _ = self.query(pk=f"SITE#{site_id}", sk_prefix="EVENTDEF#")
        return items

    def save_definition(self, definition: EventDefinition) -> EventDefinition:
        """Create or replace an event definition."""
        return self.put(definition)
