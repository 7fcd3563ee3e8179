"""Resolution of parentIndex from parentTs across channel tables."""

from collections.abc import Awaitable, Callable, Collection

from jinja2 import Template
from structlog.stdlib import BoundLogger

from slack_archiver.domain.entities.directory import SYSTEM_TABLES
from slack_archiver.domain.entities.row import ArchiveRow
from slack_archiver.domain.repositories.table_store import StoreError, TableStore

REPAIR_DONE_TEMPLATE = Template(
    "Thread repair finished: {{ tables }} tables checked, {{ updated }} rows linked."
    "{% if failed %} Failed tables: {{ failed | join(', ') }}.{% endif %}"
)


class ThreadRepairer:
    """Links replies and reactions to their parent row.

    Repair reads a snapshot of the table and writes back only the
    ``parentIndex`` column, so it can run at any time, including while
    other tasks append rows.

    Args:
        store: Table store.
        logger: Structured logger.
        excluded_tables: Non-channel tables to skip besides the system tables.
    """

    def __init__(
        self,
        store: TableStore,
        logger: BoundLogger,
        excluded_tables: Collection[str] = (),
    ) -> None:
        self._store = store
        self._logger = logger
        self._excluded = SYSTEM_TABLES | set(excluded_tables)

    async def channel_tables(self) -> list[str]:
        return [
            name for name in await self._store.list_tables() if name not in self._excluded
        ]

    async def repair(self, table: str) -> int:
        """Resolve parentIndex for every row of one table.

        Rows whose parent is not archived keep their current value; rows
        with a malformed index or timestamp are skipped.

        Returns:
            Number of rows whose parentIndex changed.
        """
        rows = [
            (row.number, ArchiveRow.from_values(row.values))
            for row in await self._store.read_rows(table)
        ]

        index_by_ts: dict[str, int] = {}
        for _, row in rows:
            if row.slack_ts is not None and row.index is not None:
                index_by_ts.setdefault(row.slack_ts.value, row.index)

        changes: dict[int, str] = {}
        for number, row in rows:
            if row.parent_ts is None:
                continue
            parent_index = index_by_ts.get(row.parent_ts.value)
            if parent_index is not None and parent_index != row.parent_index:
                changes[number] = str(parent_index)

        updated = await self._store.update_column(table, "parentIndex", changes)
        if updated:
            self._logger.info("Thread links repaired", table=table, updated=updated)
        return updated

    async def repair_all(
        self, heartbeat: Callable[[], Awaitable[None]] | None = None
    ) -> str:
        """Repair every channel table; one failing table does not stop the rest.

        Args:
            heartbeat: Awaited after each table, e.g. to refresh a progress
                timestamp that pollers watch.

        Returns:
            A status message for the operator.
        """
        tables = await self.channel_tables()
        updated = 0
        failed: list[str] = []
        for table in tables:
            try:
                updated += await self.repair(table)
            except StoreError as e:
                self._logger.error("Thread repair failed", table=table, error=str(e))
                failed.append(table)
            if heartbeat is not None:
                await heartbeat()
        return REPAIR_DONE_TEMPLATE.render(
            tables=len(tables), updated=updated, failed=failed
        )
