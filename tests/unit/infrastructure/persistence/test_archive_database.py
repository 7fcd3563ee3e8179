"""Tests for Database class."""

import asyncio
from pathlib import Path

import pytest
from sqlalchemy import text

from slack_archiver.infrastructure.persistence.database import Database


class TestDatabaseInitialization:
    """Database initialization."""

    async def test_initialize_creates_file(self, tmp_path: Path) -> None:
        db_path = tmp_path / "archive.db"
        database = Database(f"sqlite+aiosqlite:///{db_path}")

        await database.initialize()

        assert db_path.exists()
        await database.close()

    async def test_initialize_creates_parent_directory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "dir" / "archive.db"
        database = Database(f"sqlite+aiosqlite:///{db_path}")

        await database.initialize()

        assert db_path.parent.is_dir()
        await database.close()

    async def test_store_tables_created(self, tmp_path: Path) -> None:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'archive.db'}")
        await database.initialize()

        async with database.get_session() as session:
            result = await session.execute(
                text("SELECT name FROM sqlite_master WHERE type='table'")
            )
            names = {row[0] for row in result.all()}

        assert {"store_tables", "store_rows", "properties"} <= names
        await database.close()

    async def test_wal_enabled(self, tmp_path: Path) -> None:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'archive.db'}")
        await database.initialize()

        async with database.get_session() as session:
            result = await session.execute(text("PRAGMA journal_mode"))
            mode = result.scalar()

        assert str(mode).lower() == "wal"
        await database.close()

    def test_empty_url(self) -> None:
        with pytest.raises(ValueError):
            Database("")

    def test_invalid_url_format(self) -> None:
        with pytest.raises(ValueError):
            Database("invalid-url")


class TestDatabaseSession:
    """Session management."""

    async def test_engine_before_initialize(self, tmp_path: Path) -> None:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'archive.db'}")

        with pytest.raises(RuntimeError):
            _ = database.engine

    async def test_session_after_close(self, tmp_path: Path) -> None:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'archive.db'}")
        await database.initialize()
        await database.close()

        with pytest.raises(RuntimeError):
            async with database.get_session():
                pass

    async def test_rollback_on_error(self, database: Database) -> None:
        with pytest.raises(ValueError):
            async with database.get_session() as session:
                await session.execute(
                    text("INSERT INTO properties (key, value, updated_at) "
                         "VALUES ('k', 'v', CURRENT_TIMESTAMP)")
                )
                raise ValueError("boom")

        async with database.get_session() as session:
            result = await session.execute(text("SELECT COUNT(*) FROM properties"))
            assert result.scalar() == 0

    async def test_concurrent_sessions(self, database: Database) -> None:
        async def insert(i: int) -> None:
            async with database.get_session() as session:
                await session.execute(
                    text("INSERT INTO properties (key, value, updated_at) "
                         "VALUES (:k, 'v', CURRENT_TIMESTAMP)"),
                    {"k": f"key-{i}"},
                )

        await asyncio.gather(*(insert(i) for i in range(5)))

        async with database.get_session() as session:
            result = await session.execute(text("SELECT COUNT(*) FROM properties"))
            assert result.scalar() == 5
