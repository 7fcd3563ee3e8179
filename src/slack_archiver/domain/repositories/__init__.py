"""Repository protocols."""

from slack_archiver.domain.repositories.property_store import PropertyStore
from slack_archiver.domain.repositories.table_store import (
    StoreError,
    TableExistsError,
    TableNotFoundError,
    TableRow,
    TableStore,
)

__all__ = [
    "PropertyStore",
    "StoreError",
    "TableExistsError",
    "TableNotFoundError",
    "TableRow",
    "TableStore",
]
