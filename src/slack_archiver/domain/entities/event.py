"""Job events driving the background worker."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

import ulid
from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Event type enumeration."""

    BACKFILL = "backfill"
    BULK_IMPORT = "bulk_import"
    THREAD_REPAIR = "thread_repair"
    USER_SYNC = "user_sync"
    CHANNEL_SYNC = "channel_sync"
    INITIAL_SETUP = "initial_setup"


class Event(BaseModel):
    """Base class for all events."""

    id: str = Field(default_factory=lambda: str(ulid.new()))
    type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "api"
    payload: dict[str, Any] = Field(default_factory=dict)

    def get_identity_key(self) -> str:
        """Return the identity key for deduplication.

        Jobs of one type share a key, so scheduling a job replaces any
        pending continuation of the same type.
        """
        return self.type.value


class BackfillEvent(Event):
    type: Literal[EventType.BACKFILL] = EventType.BACKFILL


class BulkImportEvent(Event):
    type: Literal[EventType.BULK_IMPORT] = EventType.BULK_IMPORT


class ThreadRepairEvent(Event):
    type: Literal[EventType.THREAD_REPAIR] = EventType.THREAD_REPAIR


class UserSyncEvent(Event):
    type: Literal[EventType.USER_SYNC] = EventType.USER_SYNC


class ChannelSyncEvent(Event):
    type: Literal[EventType.CHANNEL_SYNC] = EventType.CHANNEL_SYNC


class InitialSetupEvent(Event):
    type: Literal[EventType.INITIAL_SETUP] = EventType.INITIAL_SETUP


EVENT_CLASSES: dict[EventType, type[Event]] = {
    EventType.BACKFILL: BackfillEvent,
    EventType.BULK_IMPORT: BulkImportEvent,
    EventType.THREAD_REPAIR: ThreadRepairEvent,
    EventType.USER_SYNC: UserSyncEvent,
    EventType.CHANNEL_SYNC: ChannelSyncEvent,
    EventType.INITIAL_SETUP: InitialSetupEvent,
}


def create_event(event_type: EventType, source: str = "api") -> Event:
    """Instantiate the event class registered for ``event_type``."""
    return EVENT_CLASSES[event_type](source=source)
