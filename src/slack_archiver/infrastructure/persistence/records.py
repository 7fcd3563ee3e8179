"""SQLModel tables backing the table store and the property store."""

from datetime import datetime, timezone

from sqlalchemy import Column, Index, UniqueConstraint
from sqlalchemy.types import JSON
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoreTableRecord(SQLModel, table=True):
    """A named table of the store.

    Attributes:
        id: Surrogate key; rows reference it so renames touch one record.
        name: Unique table name.
        header: Column names in storage order.
        schema_version: Row schema version the table was created with.
        created_at: Creation time, used for listing order.
    """

    __tablename__ = "store_tables"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    header: list[str] = Field(sa_column=Column(JSON, nullable=False))
    schema_version: int = Field(default=1)
    created_at: datetime = Field(default_factory=_utcnow)


class StoreRowRecord(SQLModel, table=True):
    """A data row of a store table.

    Attributes:
        id: Surrogate key.
        table_id: Owning table.
        row_number: Dense 1-based position within the table.
        cells: Cell values in header order.
    """

    __tablename__ = "store_rows"
    __table_args__ = (
        UniqueConstraint("table_id", "row_number", name="uq_store_rows_position"),
        Index("idx_store_rows_table_row", "table_id", "row_number"),
    )

    id: int | None = Field(default=None, primary_key=True)
    table_id: int = Field(foreign_key="store_tables.id")
    row_number: int
    cells: list[str] = Field(sa_column=Column(JSON, nullable=False))


class PropertyRecord(SQLModel, table=True):
    """A key/value property (job progress and similar state)."""

    __tablename__ = "properties"

    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=_utcnow)
