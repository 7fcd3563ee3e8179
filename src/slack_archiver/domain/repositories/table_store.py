"""TableStore protocol."""

from collections.abc import Mapping, Sequence
from typing import NamedTuple, Protocol


class StoreError(Exception):
    """Base exception for table store errors."""


class TableNotFoundError(StoreError):
    """Raised when a table does not exist."""


class TableExistsError(StoreError):
    """Raised when a table name is already taken."""


class TableRow(NamedTuple):
    """A data row read from a table.

    Attributes:
        number: 1-based position of the row below the header.
        values: Cell values keyed by header name.
    """

    number: int
    values: dict[str, str]


class TableStore(Protocol):
    """Repository protocol for the named-table store.

    Every table has a header row; data rows are numbered densely from 1
    in append order. Cells are plain strings.
    """

    async def get_or_create_table(
        self, name: str, header: Sequence[str], schema_version: int = 1
    ) -> bool:
        """Ensure a table exists.

        Args:
            name: Table name.
            header: Header used when the table is created.
            schema_version: Row schema version recorded at creation.

        Returns:
            True if the table was created, False if it already existed.
        """
        ...

    async def table_exists(self, name: str) -> bool:
        """Return whether a table with this name exists."""
        ...

    async def list_tables(self) -> list[str]:
        """Return all table names in creation order."""
        ...

    async def get_header(self, name: str) -> list[str]:
        """Return the header of a table.

        Raises:
            TableNotFoundError: If the table does not exist.
        """
        ...

    async def row_count(self, name: str) -> int:
        """Return the number of data rows of a table.

        Raises:
            TableNotFoundError: If the table does not exist.
        """
        ...

    async def append_rows(
        self, name: str, rows: Sequence[Mapping[str, str]]
    ) -> int:
        """Append rows after the last data row.

        Args:
            name: Table name.
            rows: Header-keyed cell mappings; missing cells are stored empty.

        Returns:
            Number of the first appended row (0 when ``rows`` is empty).

        Raises:
            TableNotFoundError: If the table does not exist.
        """
        ...

    async def read_rows(
        self, name: str, start: int = 1, count: int | None = None
    ) -> list[TableRow]:
        """Read a range of data rows.

        Args:
            name: Table name.
            start: First row number to read.
            count: Maximum number of rows, or None for all remaining rows.

        Raises:
            TableNotFoundError: If the table does not exist.
        """
        ...

    async def update_cell(
        self, name: str, row_number: int, column: str, value: str
    ) -> None:
        """Overwrite a single cell.

        Raises:
            TableNotFoundError: If the table or row does not exist.
            KeyError: If the column is not part of the header.
        """
        ...

    async def update_column(
        self, name: str, column: str, values: Mapping[int, str]
    ) -> int:
        """Overwrite one column for several rows.

        Args:
            name: Table name.
            column: Header name of the column.
            values: New cell value per row number; rows that no longer
                exist are skipped.

        Returns:
            Number of rows updated.
        """
        ...

    async def replace_rows(
        self, name: str, rows: Sequence[Mapping[str, str]]
    ) -> None:
        """Atomically replace all data rows of a table, keeping its header."""
        ...

    async def rename_table(self, old_name: str, new_name: str) -> None:
        """Rename a table.

        Raises:
            TableNotFoundError: If ``old_name`` does not exist.
            TableExistsError: If ``new_name`` is already taken.
        """
        ...
