"""SQLite implementation of PropertyStore."""

from datetime import datetime, timezone

from slack_archiver.infrastructure.persistence.database import Database
from slack_archiver.infrastructure.persistence.records import PropertyRecord


class SqlitePropertyStore:
    """SQLite implementation of PropertyStore."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def get(self, key: str) -> str | None:
        async with self._database.get_session() as session:
            record = await session.get(PropertyRecord, key)
            return record.value if record is not None else None

    async def set(self, key: str, value: str) -> None:
        async with self._database.get_session() as session:
            record = await session.get(PropertyRecord, key)
            if record is None:
                session.add(PropertyRecord(key=key, value=value))
            else:
                record.value = value
                record.updated_at = datetime.now(timezone.utc)
                session.add(record)

    async def delete(self, key: str) -> bool:
        async with self._database.get_session() as session:
            record = await session.get(PropertyRecord, key)
            if record is None:
                return False
            await session.delete(record)
            return True
