"""Infrastructure layer."""

from slack_archiver.infrastructure.event_queue import EventQueue
from slack_archiver.infrastructure.persistence import Database

__all__ = ["Database", "EventQueue"]
