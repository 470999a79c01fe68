"""DynamoDB repositories for Lookout entities."""

from lookout.repositories.base import BaseRepository
from lookout.repositories.event import EventDefinitionRepository, EventRepository
from lookout.repositories.page_view import PageViewRepository
from lookout.repositories.session import SessionRepository
from lookout.repositories.site import SiteRepository

__all__ = [
    "BaseRepository",
    "EventDefinitionRepository",
    "EventRepository",
    "PageViewRepository",
    "SessionRepository",
    "SiteRepository",
]
