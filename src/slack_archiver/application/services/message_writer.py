"""Conversion of Slack messages into archive rows and deduplicated bulk writes."""

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, tzinfo
from typing import Any

from structlog.stdlib import BoundLogger

from slack_archiver.application.services.mentions import replace_mentions_with_index
from slack_archiver.application.services.thread_repair import ThreadRepairer
from slack_archiver.domain.entities.row import (
    ArchiveRow,
    RowType,
    SlackTs,
    format_created_at,
)
from slack_archiver.domain.repositories.table_store import TableStore

SKIPPED_SUBTYPES = frozenset({"channel_join", "channel_leave"})
UNKNOWN_FILE_NAME = "Unknown File"


def format_files(files: Iterable[Mapping[str, Any]] | None) -> str:
    """Render attachments as newline separated "url|name" pairs."""
    if not files:
        return ""
    return "\n".join(
        "{}|{}".format(
            f.get("url_private") or f.get("permalink") or "",
            f.get("name") or f.get("title") or UNKNOWN_FILE_NAME,
        )
        for f in files
    )


def classify_message(message: Mapping[str, Any]) -> RowType:
    """Pick the row type of a message.

    A reply is any message whose thread_ts differs from its own ts; the
    reply check wins over the attachment check.
    """
    ts = message.get("ts")
    thread_ts = message.get("thread_ts")
    if thread_ts and thread_ts != ts:
        return RowType.REPLY
    if message.get("subtype") == "file_share" or message.get("files"):
        return RowType.FILE
    if (message.get("reply_count") or 0) > 0:
        return RowType.THREAD_START
    return RowType.MESSAGE


def message_sort_key(message: Mapping[str, Any]) -> tuple[int, int]:
    ts = SlackTs.parse(message.get("ts"))
    return ts.sort_key if ts is not None else (-1, 0)


def build_row(
    message: Mapping[str, Any],
    index: int,
    lookup: Mapping[str, int],
    timezone: tzinfo,
    row_type: RowType | None = None,
) -> ArchiveRow:
    """Build the archive row for one message.

    Args:
        message: Slack message payload.
        index: Row index to assign.
        lookup: User id to directory index map used for the author and
            mention tokens.
        timezone: Zone used to render createdAt.
        row_type: Overrides the classified type.
    """
    ts = SlackTs.parse(message.get("ts"))
    row_type = row_type or classify_message(message)
    moment = ts.to_datetime(timezone) if ts is not None else None
    user_id = message.get("user") or ""
    return ArchiveRow(
        index=index,
        created_at=format_created_at(moment or datetime.now(timezone)),
        user_index=lookup.get(user_id) or user_id,
        type=row_type,
        content=replace_mentions_with_index(message.get("text") or "", lookup),
        parent_ts=(
            SlackTs.parse(message.get("thread_ts"))
            if row_type is RowType.REPLY
            else None
        ),
        slack_ts=ts,
        file_url=format_files(message.get("files")),
    )


async def read_existing(store: TableStore, table: str) -> tuple[set[str], int]:
    """Return the archived timestamps of a table and its highest index."""
    existing: set[str] = set()
    last_index = 0
    for stored in await store.read_rows(table):
        row = ArchiveRow.from_values(stored.values)
        if row.slack_ts is not None:
            existing.add(row.slack_ts.value)
        if row.index is not None:
            last_index = max(last_index, row.index)
    return existing, last_index


class MessageWriter:
    """Deduplicating, chunked writer shared by backfill and bulk import.

    The existing-timestamp snapshot is taken once per call; rows are then
    written without further checks, so a concurrent realtime append of the
    same message may leave one duplicate row.

    Args:
        store: Table store.
        repairer: Thread repair pass run after writes.
        timezone: Zone used to render createdAt.
        chunk_size: Maximum rows per append.
        logger: Structured logger.
    """

    def __init__(
        self,
        store: TableStore,
        repairer: ThreadRepairer,
        timezone: tzinfo,
        chunk_size: int,
        logger: BoundLogger,
    ) -> None:
        self._store = store
        self._repairer = repairer
        self._timezone = timezone
        self._chunk_size = chunk_size
        self._logger = logger

    async def append_messages(
        self,
        table: str,
        messages: Sequence[Mapping[str, Any]],
        lookup: Mapping[str, int],
        skip_repair: bool = False,
    ) -> int:
        """Append the messages not yet archived in ``table``.

        Messages are written in ascending timestamp order so indexes follow
        chronology; join/leave notices and messages without ts are dropped.

        Returns:
            Number of rows written.
        """
        existing, last_index = await read_existing(self._store, table)

        rows: list[dict[str, str]] = []
        for message in sorted(messages, key=message_sort_key):
            ts = SlackTs.parse(message.get("ts"))
            if ts is None or ts.value in existing:
                continue
            if message.get("subtype") in SKIPPED_SUBTYPES:
                continue
            existing.add(ts.value)
            last_index += 1
            rows.append(
                build_row(message, last_index, lookup, self._timezone).to_values()
            )

        for start in range(0, len(rows), self._chunk_size):
            await self._store.append_rows(table, rows[start : start + self._chunk_size])

        if rows:
            self._logger.info("Messages archived", table=table, count=len(rows))
            if not skip_repair:
                await self._repairer.repair(table)
        return len(rows)
