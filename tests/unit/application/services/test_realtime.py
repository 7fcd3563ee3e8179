"""Tests for RealtimeEventHandler."""

import asyncio
from typing import Any
from zoneinfo import ZoneInfo

import pytest
from structlog.stdlib import BoundLogger

from slack_archiver.application.services.channel_directory import ChannelDirectory
from slack_archiver.application.services.realtime import (
    ACK_BOT,
    ACK_DM,
    ACK_DUPLICATE_EVENT,
    ACK_DUPLICATE_LOCKED,
    ACK_DUPLICATE_TS,
    ACK_EDIT_NOT_FOUND,
    ACK_IGNORED,
    ACK_JOINED,
    ACK_LOCK_TIMEOUT,
    ACK_OK,
    ACK_UPDATED,
    ACK_USER_REGISTERED,
    RealtimeEventHandler,
)
from slack_archiver.application.services.user_directory import UserDirectory
from slack_archiver.domain.entities.directory import USER_TABLE
from slack_archiver.domain.entities.row import ArchiveRow, RowType
from slack_archiver.infrastructure.cache import TTLCache
from slack_archiver.infrastructure.locking import StoreLock
from slack_archiver.infrastructure.persistence import SqliteTableStore
from slack_archiver.infrastructure.slack import SlackApi


@pytest.fixture
def lock() -> StoreLock:
    return StoreLock(timeout=1)


@pytest.fixture
def handler(
    store: SqliteTableStore,
    users: UserDirectory,
    channels: ChannelDirectory,
    slack: SlackApi,
    lock: StoreLock,
    logger: BoundLogger,
    web_client: Any,
) -> RealtimeEventHandler:
    web_client.members = [
        {"id": "U01", "profile": {"real_name": "Ann"}},
        {"id": "U02", "profile": {"real_name": "Bo"}},
    ]
    web_client.names["C01"] = "general"
    return RealtimeEventHandler(
        store,
        users,
        channels,
        slack,
        lock,
        TTLCache(600),
        ZoneInfo("Asia/Tokyo"),
        duplicate_window=50,
        logger=logger,
    )


_counter = iter(range(1, 1_000_000))


def envelope(event: dict[str, Any], event_id: str | None = None) -> dict[str, Any]:
    return {
        "type": "event_callback",
        "event_id": event_id or f"Ev{next(_counter):06d}",
        "event": event,
    }


def message(ts: str, text: str = "hi", user: str = "U01", **fields: Any) -> dict[str, Any]:
    return {
        "type": "message",
        "channel": "C01",
        "channel_type": "channel",
        "user": user,
        "text": text,
        "ts": ts,
        **fields,
    }


def reaction(user: str, name: str, item_ts: str, event_ts: str) -> dict[str, Any]:
    return {
        "type": "reaction_added",
        "user": user,
        "reaction": name,
        "item": {"type": "message", "channel": "C01", "ts": item_ts},
        "event_ts": event_ts,
    }


async def rows(store: SqliteTableStore, table: str = "general") -> list[ArchiveRow]:
    return [ArchiveRow.from_values(r.values) for r in await store.read_rows(table)]


class TestEnvelope:
    """Envelope-level handling."""

    async def test_url_verification(self, handler: RealtimeEventHandler) -> None:
        ack = await handler.handle({"type": "url_verification", "challenge": "abc123"})

        assert ack == "abc123"

    async def test_redelivered_event_id(
        self, handler: RealtimeEventHandler, store: SqliteTableStore
    ) -> None:
        body = envelope(message("1.0"), event_id="Ev01")

        assert await handler.handle(body) == ACK_OK
        assert await handler.handle(body) == ACK_DUPLICATE_EVENT
        assert len(await rows(store)) == 1

    async def test_bot_message_ignored(self, handler: RealtimeEventHandler) -> None:
        ack = await handler.handle(envelope(message("1.0", bot_id="B01")))

        assert ack == ACK_BOT

    async def test_dm_ignored(self, handler: RealtimeEventHandler) -> None:
        ack = await handler.handle(envelope(message("1.0", channel_type="im")))

        assert ack == ACK_DM

    async def test_other_subtypes_ignored(self, handler: RealtimeEventHandler) -> None:
        ack = await handler.handle(envelope(message("1.0", subtype="channel_join")))

        assert ack == ACK_IGNORED

    async def test_unknown_event_type(self, handler: RealtimeEventHandler) -> None:
        assert await handler.handle(envelope({"type": "pin_added"})) == ACK_IGNORED

    async def test_non_object_event_ignored(
        self, handler: RealtimeEventHandler
    ) -> None:
        assert await handler.handle(envelope("x")) == ACK_IGNORED  # type: ignore[arg-type]
        assert await handler.handle({"type": "event_callback", "event": None}) == ACK_IGNORED


class TestMessages:
    """Message archiving."""

    async def test_message_appended(
        self, handler: RealtimeEventHandler, store: SqliteTableStore
    ) -> None:
        ack = await handler.handle(
            envelope(message("1700000000.000100", "hey <@U02>"))
        )

        assert ack == ACK_OK
        (row,) = await rows(store)
        assert row.index == 1
        assert row.user_index == 1
        assert row.content == "hey <@2>"
        assert row.type is RowType.MESSAGE
        assert row.created_at == "2023/11/15 07:13:20"

    async def test_same_ts_is_duplicate(
        self, handler: RealtimeEventHandler, store: SqliteTableStore
    ) -> None:
        await handler.handle(envelope(message("1.0")))

        ack = await handler.handle(envelope(message("1.0")))

        assert ack == ACK_DUPLICATE_TS
        assert len(await rows(store)) == 1

    async def test_reply_and_file(
        self, handler: RealtimeEventHandler, store: SqliteTableStore
    ) -> None:
        await handler.handle(envelope(message("1.0", "root")))
        await handler.handle(envelope(message("2.0", "reply", thread_ts="1.0")))
        await handler.handle(
            envelope(
                message(
                    "3.0",
                    "see file",
                    subtype="file_share",
                    files=[{"url_private": "https://f/1", "name": "a.png"}],
                )
            )
        )

        archived = await rows(store)
        assert [r.type for r in archived] == [RowType.MESSAGE, RowType.REPLY, RowType.FILE]
        assert str(archived[1].parent_ts) == "1.0"
        assert archived[2].file_url == "https://f/1|a.png"

    async def test_unknown_user_kept_raw(
        self, handler: RealtimeEventHandler, store: SqliteTableStore
    ) -> None:
        await handler.handle(envelope(message("1.0", user="U404")))

        assert (await rows(store))[0].user_index == "U404"

    async def test_concurrent_messages_get_consecutive_indexes(
        self, handler: RealtimeEventHandler, store: SqliteTableStore
    ) -> None:
        await handler.handle(envelope(message("1.0")))

        acks = await asyncio.gather(
            handler.handle(envelope(message("2.0", "a"))),
            handler.handle(envelope(message("3.0", "b"))),
        )

        assert acks == [ACK_OK, ACK_OK]
        assert sorted(r.index for r in await rows(store)) == [1, 2, 3]

    async def test_concurrent_same_message_written_once(
        self,
        handler: RealtimeEventHandler,
        users: UserDirectory,
        channels: ChannelDirectory,
        store: SqliteTableStore,
    ) -> None:
        await users.sync()
        await channels.get_table_for_channel("C01")

        acks = await asyncio.gather(
            handler.handle(envelope(message("5.0"))),
            handler.handle(envelope(message("5.0"))),
        )

        assert acks.count(ACK_OK) == 1
        assert set(acks) - {ACK_OK} <= {ACK_DUPLICATE_TS, ACK_DUPLICATE_LOCKED}
        assert len(await rows(store)) == 1

    async def test_lock_timeout(
        self, handler: RealtimeEventHandler, lock: StoreLock, store: SqliteTableStore
    ) -> None:
        """A delivery waiting past the lock timeout is dropped."""
        await handler.handle(envelope(message("1.0")))

        async with lock.hold():
            ack = await handler.handle(envelope(message("2.0")))

        assert ack == ACK_LOCK_TIMEOUT
        assert len(await rows(store)) == 1


class TestReactions:
    """Reaction archiving."""

    async def test_two_users_same_emoji(
        self, handler: RealtimeEventHandler, store: SqliteTableStore
    ) -> None:
        await handler.handle(envelope(message("1.0", "nice")))

        await handler.handle(envelope(reaction("U01", "tada", "1.0", "1.1")))
        await handler.handle(envelope(reaction("U02", "tada", "1.0", "1.2")))

        archived = await rows(store)
        reactions = [r for r in archived if r.type is RowType.REACTION]
        assert [r.content for r in reactions] == [":tada:", ":tada:"]
        assert [r.user_index for r in reactions] == [1, 2]
        assert all(str(r.parent_ts) == "1.0" for r in reactions)


class TestEdits:
    """message_changed handling."""

    async def test_edit_updates_row(
        self, handler: RealtimeEventHandler, store: SqliteTableStore
    ) -> None:
        await handler.handle(envelope(message("1.0", "tpyo")))

        ack = await handler.handle(
            envelope(
                {
                    "type": "message",
                    "subtype": "message_changed",
                    "channel": "C01",
                    "ts": "1.5",
                    "message": {"ts": "1.0", "text": "typo <@U02>"},
                }
            )
        )

        assert ack == ACK_UPDATED
        (row,) = await rows(store)
        assert row.content == "typo <@2>"
        assert row.type is RowType.EDITED

    async def test_edit_of_unarchived_message(
        self, handler: RealtimeEventHandler, store: SqliteTableStore
    ) -> None:
        ack = await handler.handle(
            envelope(
                {
                    "type": "message",
                    "subtype": "message_changed",
                    "channel": "C01",
                    "message": {"ts": "9.0", "text": "edited"},
                }
            )
        )

        assert ack == ACK_EDIT_NOT_FOUND
        assert await rows(store) == []


class TestDirectoryEvents:
    """channel_created and team_join."""

    async def test_channel_created(
        self, handler: RealtimeEventHandler, store: SqliteTableStore, web_client: Any
    ) -> None:
        ack = await handler.handle(
            envelope({"type": "channel_created", "channel": {"id": "C09", "name": "new"}})
        )

        assert ack == ACK_JOINED
        assert web_client.joined == ["C09"]
        assert await store.table_exists("new")

    async def test_team_join(
        self, handler: RealtimeEventHandler, store: SqliteTableStore
    ) -> None:
        ack = await handler.handle(
            envelope({"type": "team_join", "user": {"id": "U02"}})
        )

        assert ack == ACK_USER_REGISTERED
        assert await store.row_count(USER_TABLE) == 2
