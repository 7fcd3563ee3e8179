"""Realtime archiving of Slack Events API deliveries."""

from collections.abc import Mapping
from datetime import datetime, tzinfo
from typing import Any

from structlog.stdlib import BoundLogger

from slack_archiver.application.services.channel_directory import ChannelDirectory
from slack_archiver.application.services.mentions import replace_mentions_with_index
from slack_archiver.application.services.message_writer import build_row, format_files
from slack_archiver.application.services.user_directory import UserDirectory
from slack_archiver.domain.entities.row import (
    ArchiveRow,
    RowType,
    SlackTs,
    format_created_at,
)
from slack_archiver.domain.repositories.table_store import TableRow, TableStore
from slack_archiver.infrastructure.cache import TTLCache
from slack_archiver.infrastructure.locking import LockTimeoutError, StoreLock
from slack_archiver.infrastructure.slack.client import SlackApi

ACK_OK = "OK"
ACK_DUPLICATE_EVENT = "Duplicate Request (Cached)"
ACK_DUPLICATE_TS = "Duplicate"
ACK_DUPLICATE_LOCKED = "Duplicate (Locked Check)"
ACK_BOT = "Ignore Bot Message"
ACK_JOINED = "Auto-Joined"
ACK_USER_REGISTERED = "User Registered"
ACK_DM = "Ignore DM"
ACK_IGNORED = "Ignored"
ACK_NO_TABLE = "No Table Found"
ACK_UPDATED = "Updated"
ACK_EDIT_NOT_FOUND = "Edit target not found"
ACK_LOCK_TIMEOUT = "Lock timeout"
ACK_ERROR = "Error"

# Message subtypes archived like plain messages
ARCHIVED_SUBTYPES = frozenset({"file_share", "thread_broadcast"})


class RealtimeEventHandler:
    """Turns one webhook envelope into at most one row mutation.

    Appends run under the store-wide lock: duplicate check, next index and
    append happen as one critical section. The handler always returns an
    acknowledgement string; no exception escapes ``handle``.

    Args:
        store: Table store.
        users: User directory.
        channels: Channel directory.
        slack: Slack Web API wrapper.
        lock: Store-wide lock shared by every realtime delivery.
        seen_events: Short-lived cache of processed event ids.
        timezone: Zone used to render createdAt.
        duplicate_window: Number of trailing rows checked for a duplicate ts.
        logger: Structured logger.
    """

    def __init__(
        self,
        store: TableStore,
        users: UserDirectory,
        channels: ChannelDirectory,
        slack: SlackApi,
        lock: StoreLock,
        seen_events: TTLCache[bool],
        timezone: tzinfo,
        duplicate_window: int,
        logger: BoundLogger,
    ) -> None:
        self._store = store
        self._users = users
        self._channels = channels
        self._slack = slack
        self._lock = lock
        self._seen_events = seen_events
        self._timezone = timezone
        self._duplicate_window = duplicate_window
        self._logger = logger

    async def handle(self, envelope: Mapping[str, Any]) -> str:
        """Process one Events API envelope.

        Args:
            envelope: Parsed request body ``{type, event_id, event}``.

        Returns:
            The plain-text acknowledgement.
        """
        if envelope.get("type") == "url_verification":
            return str(envelope.get("challenge", ""))

        event_id = envelope.get("event_id")
        if event_id and not self._seen_events.add_if_absent(str(event_id), True):
            return ACK_DUPLICATE_EVENT

        event = envelope.get("event")
        if not isinstance(event, dict):
            return ACK_IGNORED
        if event.get("bot_id"):
            return ACK_BOT

        try:
            return await self._dispatch(event)
        except LockTimeoutError as e:
            self._logger.warning(
                "Event dropped on lock timeout", event_id=event_id, error=str(e)
            )
            return ACK_LOCK_TIMEOUT
        except Exception as e:
            self._logger.error(
                "Error handling event",
                event_id=event_id,
                event_type=event.get("type"),
                error=str(e),
                exc_info=True,
            )
            return ACK_ERROR

    async def _dispatch(self, event: dict[str, Any]) -> str:
        event_type = event.get("type")

        if event_type == "channel_created":
            channel = event.get("channel") or {}
            if channel.get("id"):
                await self._slack.join_channel(channel["id"])
                await self._channels.get_table_for_channel(
                    channel["id"], channel.get("name")
                )
            return ACK_JOINED

        if event_type == "team_join":
            await self._users.sync()
            return ACK_USER_REGISTERED

        if event.get("channel_type") == "im":
            return ACK_DM

        subtype = event.get("subtype")
        if event_type == "message":
            if subtype == "message_changed":
                kind = "edit"
            elif subtype is None or subtype in ARCHIVED_SUBTYPES:
                kind = "message"
            else:
                return ACK_IGNORED
        elif event_type == "reaction_added":
            kind = "reaction"
        else:
            return ACK_IGNORED

        item = event.get("item") or {}
        table = await self._channels.get_table_for_channel(
            event.get("channel") or item.get("channel")
        )
        if table is None:
            return ACK_NO_TABLE

        if kind == "edit":
            return await self._apply_edit(table, event.get("message") or {})

        ts = SlackTs.parse(event.get("ts") or event.get("event_ts") or item.get("ts"))
        if ts is None:
            return ACK_IGNORED
        if self._find_ts(await self._recent_rows(table), ts) is not None:
            return ACK_DUPLICATE_TS

        async with self._lock.hold():
            recent = await self._recent_rows(table)
            if self._find_ts(recent, ts) is not None:
                return ACK_DUPLICATE_LOCKED
            next_index = _last_index(recent) + 1
            row = await self._build(kind, event, ts, next_index)
            await self._store.append_rows(table, [row.to_values()])

        self._logger.info(
            "Event archived", table=table, index=next_index, type=row.type.value
        )
        return ACK_OK

    async def _build(
        self, kind: str, event: dict[str, Any], ts: SlackTs, index: int
    ) -> ArchiveRow:
        user_index = await self._users.resolve_user_index(event.get("user"))
        if kind == "reaction":
            moment = ts.to_datetime(self._timezone) or datetime.now(self._timezone)
            return ArchiveRow(
                index=index,
                created_at=format_created_at(moment),
                user_index=user_index,
                type=RowType.REACTION,
                content=f":{event.get('reaction', '')}:",
                parent_ts=SlackTs.parse((event.get("item") or {}).get("ts")),
                slack_ts=ts,
            )
        lookup = await self._users.cache.lookup()
        row = build_row({**event, "ts": ts.value}, index, lookup, self._timezone)
        return row.model_copy(update={"user_index": user_index})

    async def _recent_rows(self, table: str) -> list[TableRow]:
        count = await self._store.row_count(table)
        start = max(1, count - self._duplicate_window + 1)
        return await self._store.read_rows(table, start=start)

    @staticmethod
    def _find_ts(rows: list[TableRow], ts: SlackTs) -> TableRow | None:
        for row in reversed(rows):
            if SlackTs.parse(row.values.get("slackTs")) == ts:
                return row
        return None

    async def _apply_edit(self, table: str, message: Mapping[str, Any]) -> str:
        """Patch the edited message's row in place, newest rows first."""
        ts = SlackTs.parse(message.get("ts"))
        target = None
        if ts is not None:
            target = self._find_ts(await self._store.read_rows(table), ts)
        if target is None:
            self._logger.warning(
                "Edit target not found", table=table, ts=str(ts) if ts else None
            )
            return ACK_EDIT_NOT_FOUND

        lookup = await self._users.cache.lookup()
        content = replace_mentions_with_index(message.get("text") or "", lookup)
        await self._store.update_cell(table, target.number, "content", content)
        await self._store.update_cell(
            table, target.number, "fileUrl", format_files(message.get("files"))
        )
        await self._store.update_cell(table, target.number, "type", RowType.EDITED.value)
        self._logger.info("Message edited", table=table, row=target.number)
        return ACK_UPDATED


def _last_index(rows: list[TableRow]) -> int:
    """Highest index among the trailing rows; malformed cells are ignored."""
    indexes = (ArchiveRow.from_values(row.values).index for row in rows)
    return max((index for index in indexes if index is not None), default=0)
