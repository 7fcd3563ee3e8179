"""Persistence infrastructure."""

from slack_archiver.infrastructure.persistence.database import Database
from slack_archiver.infrastructure.persistence.property_store import (
    SqlitePropertyStore,
)
from slack_archiver.infrastructure.persistence.table_store import SqliteTableStore

__all__ = ["Database", "SqlitePropertyStore", "SqliteTableStore"]
