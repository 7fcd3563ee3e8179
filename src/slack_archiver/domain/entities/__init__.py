"""Domain entities."""

from slack_archiver.domain.entities.directory import ChannelMapEntry, UserEntry
from slack_archiver.domain.entities.event import Event, EventType, create_event
from slack_archiver.domain.entities.progress import BackfillProgress, ImportProgress
from slack_archiver.domain.entities.row import ArchiveRow, RowType, SlackTs

__all__ = [
    "ArchiveRow",
    "BackfillProgress",
    "ChannelMapEntry",
    "Event",
    "EventType",
    "ImportProgress",
    "RowType",
    "SlackTs",
    "UserEntry",
    "create_event",
]
