"""SQLite implementation of TableStore."""

import asyncio
from collections.abc import Mapping, Sequence

from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from slack_archiver.domain.repositories.table_store import (
    TableExistsError,
    TableNotFoundError,
    TableRow,
)
from slack_archiver.infrastructure.persistence.database import Database
from slack_archiver.infrastructure.persistence.records import (
    StoreRowRecord,
    StoreTableRecord,
)


class SqliteTableStore:
    """SQLite implementation of TableStore.

    Tables live in ``store_tables``; each row is a JSON array of cells in
    ``store_rows``. Writes are serialized through one asyncio lock so that
    row numbers stay dense when several tasks append concurrently.
    """

    def __init__(self, database: Database) -> None:
        """Initialize the store.

        Args:
            database: Database instance for session management.
        """
        self._database = database
        self._write_lock = asyncio.Lock()

    async def _get_table(self, session: AsyncSession, name: str) -> StoreTableRecord:
        result = await session.execute(
            select(StoreTableRecord).where(StoreTableRecord.name == name)
        )
        table = result.scalars().first()
        if table is None:
            raise TableNotFoundError(f"Table not found: {name}")
        return table

    async def get_or_create_table(
        self, name: str, header: Sequence[str], schema_version: int = 1
    ) -> bool:
        async with self._write_lock:
            async with self._database.get_session() as session:
                result = await session.execute(
                    select(StoreTableRecord).where(StoreTableRecord.name == name)
                )
                if result.scalars().first() is not None:
                    return False
                session.add(
                    StoreTableRecord(
                        name=name, header=list(header), schema_version=schema_version
                    )
                )
                return True

    async def table_exists(self, name: str) -> bool:
        async with self._database.get_session() as session:
            result = await session.execute(
                select(StoreTableRecord.id).where(StoreTableRecord.name == name)
            )
            return result.first() is not None

    async def list_tables(self) -> list[str]:
        async with self._database.get_session() as session:
            result = await session.execute(
                select(StoreTableRecord.name).order_by(
                    StoreTableRecord.created_at, StoreTableRecord.id
                )
            )
            return list(result.scalars().all())

    async def get_header(self, name: str) -> list[str]:
        async with self._database.get_session() as session:
            table = await self._get_table(session, name)
            return list(table.header)

    async def row_count(self, name: str) -> int:
        async with self._database.get_session() as session:
            table = await self._get_table(session, name)
            return await self._max_row_number(session, table)

    async def _max_row_number(
        self, session: AsyncSession, table: StoreTableRecord
    ) -> int:
        result = await session.execute(
            select(func.max(StoreRowRecord.row_number)).where(
                StoreRowRecord.table_id == table.id
            )
        )
        return result.scalar() or 0

    async def append_rows(self, name: str, rows: Sequence[Mapping[str, str]]) -> int:
        if not rows:
            return 0
        async with self._write_lock:
            async with self._database.get_session() as session:
                table = await self._get_table(session, name)
                first = await self._max_row_number(session, table) + 1
                session.add_all(
                    StoreRowRecord(
                        table_id=table.id,
                        row_number=first + offset,
                        cells=_to_cells(table.header, row),
                    )
                    for offset, row in enumerate(rows)
                )
                return first

    async def read_rows(
        self, name: str, start: int = 1, count: int | None = None
    ) -> list[TableRow]:
        async with self._database.get_session() as session:
            table = await self._get_table(session, name)
            statement = (
                select(StoreRowRecord)
                .where(StoreRowRecord.table_id == table.id)
                .where(StoreRowRecord.row_number >= start)
                .order_by(StoreRowRecord.row_number)  # type: ignore[arg-type]
            )
            if count is not None:
                statement = statement.limit(count)
            result = await session.execute(statement)
            return [
                TableRow(record.row_number, _to_values(table.header, record.cells))
                for record in result.scalars().all()
            ]

    async def update_cell(
        self, name: str, row_number: int, column: str, value: str
    ) -> None:
        async with self._write_lock:
            async with self._database.get_session() as session:
                table = await self._get_table(session, name)
                if column not in table.header:
                    raise KeyError(column)
                position = table.header.index(column)
                result = await session.execute(
                    select(StoreRowRecord)
                    .where(StoreRowRecord.table_id == table.id)
                    .where(StoreRowRecord.row_number == row_number)
                )
                record = result.scalars().first()
                if record is None:
                    raise TableNotFoundError(f"Row {row_number} not found in {name}")
                cells = _pad(record.cells, len(table.header))
                cells[position] = value
                # Assign a new list so the JSON column is flagged dirty
                record.cells = cells
                session.add(record)

    async def update_column(
        self, name: str, column: str, values: Mapping[int, str]
    ) -> int:
        if not values:
            return 0
        async with self._write_lock:
            async with self._database.get_session() as session:
                table = await self._get_table(session, name)
                if column not in table.header:
                    raise KeyError(column)
                position = table.header.index(column)
                result = await session.execute(
                    select(StoreRowRecord)
                    .where(StoreRowRecord.table_id == table.id)
                    .where(StoreRowRecord.row_number.in_(list(values)))  # type: ignore[attr-defined]
                )
                updated = 0
                for record in result.scalars().all():
                    cells = _pad(record.cells, len(table.header))
                    cells[position] = values[record.row_number]
                    record.cells = cells
                    session.add(record)
                    updated += 1
                return updated

    async def replace_rows(self, name: str, rows: Sequence[Mapping[str, str]]) -> None:
        async with self._write_lock:
            async with self._database.get_session() as session:
                table = await self._get_table(session, name)
                await session.execute(
                    delete(StoreRowRecord).where(
                        StoreRowRecord.table_id == table.id  # type: ignore[arg-type]
                    )
                )
                session.add_all(
                    StoreRowRecord(
                        table_id=table.id,
                        row_number=number,
                        cells=_to_cells(table.header, row),
                    )
                    for number, row in enumerate(rows, start=1)
                )

    async def rename_table(self, old_name: str, new_name: str) -> None:
        if old_name == new_name:
            return
        async with self._write_lock:
            async with self._database.get_session() as session:
                table = await self._get_table(session, old_name)
                taken = await session.execute(
                    select(StoreTableRecord.id).where(StoreTableRecord.name == new_name)
                )
                if taken.first() is not None:
                    raise TableExistsError(f"Table already exists: {new_name}")
                await session.execute(
                    update(StoreTableRecord)
                    .where(StoreTableRecord.id == table.id)  # type: ignore[arg-type]
                    .values(name=new_name)
                )


def _pad(cells: Sequence[str], width: int) -> list[str]:
    padded = [str(cell) for cell in cells[:width]]
    padded.extend("" for _ in range(width - len(padded)))
    return padded


def _to_cells(header: Sequence[str], row: Mapping[str, str]) -> list[str]:
    return [str(row.get(column, "")) for column in header]


def _to_values(header: Sequence[str], cells: Sequence[str]) -> dict[str, str]:
    return dict(zip(header, _pad(cells, len(header))))
