"""Shared fixtures: SQLite-backed stores and an in-memory Slack Web API."""

from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import pytest
import structlog
from slack_sdk.errors import SlackApiError

from slack_archiver.application.services.channel_directory import ChannelDirectory
from slack_archiver.application.services.message_writer import MessageWriter
from slack_archiver.application.services.progress import ProgressRepository
from slack_archiver.application.services.thread_repair import ThreadRepairer
from slack_archiver.application.services.user_directory import (
    UserDirectory,
    UserIndexCache,
)
from slack_archiver.infrastructure.persistence import (
    Database,
    SqlitePropertyStore,
    SqliteTableStore,
)
from slack_archiver.infrastructure.slack import SlackApi


class FakeResponse:
    """Stands in for slack_sdk's AsyncSlackResponse."""

    def __init__(self, data: dict[str, Any]) -> None:
        self.data = data


class FakeWebClient:
    """In-memory AsyncWebClient with cursor pagination.

    Attributes:
        members: Result of users.list.
        channels: Result of conversations.list.
        names: Channel id to name for conversations.info.
        history: Channel id to messages for conversations.history.
        replies: (channel id, thread ts) to messages for conversations.replies.
        failing: Method names that raise SlackApiError.
        page_size: Items per page for every paginated method.
    """

    def __init__(self) -> None:
        self.members: list[dict[str, Any]] = []
        self.channels: list[dict[str, Any]] = []
        self.names: dict[str, str] = {}
        self.history: dict[str, list[dict[str, Any]]] = {}
        self.replies: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.failing: set[str] = set()
        self.page_size = 100
        self.joined: list[str] = []
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def _record(self, method: str, params: dict[str, Any]) -> None:
        self.calls.append((method, params))
        if method in self.failing:
            raise SlackApiError(
                "The request failed",
                FakeResponse({"ok": False, "error": "internal_error"}),
            )

    def _page(self, key: str, items: list[dict[str, Any]], cursor: str | None) -> FakeResponse:
        start = int(cursor or 0)
        end = start + self.page_size
        next_cursor = str(end) if end < len(items) else ""
        return FakeResponse(
            {
                "ok": True,
                key: items[start:end],
                "response_metadata": {"next_cursor": next_cursor},
            }
        )

    async def users_list(self, **params: Any) -> FakeResponse:
        self._record("users_list", params)
        return self._page("members", self.members, params.get("cursor"))

    async def conversations_list(self, **params: Any) -> FakeResponse:
        self._record("conversations_list", params)
        return self._page("channels", self.channels, params.get("cursor"))

    async def conversations_join(self, **params: Any) -> FakeResponse:
        self._record("conversations_join", params)
        self.joined.append(params["channel"])
        return FakeResponse({"ok": True, "channel": {"id": params["channel"]}})

    async def conversations_info(self, **params: Any) -> FakeResponse:
        self._record("conversations_info", params)
        name = self.names.get(params["channel"])
        if name is None:
            return FakeResponse({"ok": False, "error": "channel_not_found"})
        return FakeResponse({"ok": True, "channel": {"id": params["channel"], "name": name}})

    async def conversations_history(self, **params: Any) -> FakeResponse:
        self._record("conversations_history", params)
        return self._page(
            "messages", self.history.get(params["channel"], []), params.get("cursor")
        )

    async def conversations_replies(self, **params: Any) -> FakeResponse:
        self._record("conversations_replies", params)
        return self._page(
            "messages",
            self.replies.get((params["channel"], params["ts"]), []),
            params.get("cursor"),
        )


@pytest.fixture
def logger() -> structlog.stdlib.BoundLogger:
    return structlog.get_logger()


@pytest.fixture
async def database(tmp_path: Path) -> AsyncIterator[Database]:
    """Create a test database."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'archive.db'}")
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def store(database: Database) -> SqliteTableStore:
    return SqliteTableStore(database)


@pytest.fixture
def properties(database: Database) -> SqlitePropertyStore:
    return SqlitePropertyStore(database)


@pytest.fixture
def web_client() -> FakeWebClient:
    return FakeWebClient()


@pytest.fixture
def slack(web_client: FakeWebClient, logger: structlog.stdlib.BoundLogger) -> SlackApi:
    return SlackApi(web_client, logger)  # type: ignore[arg-type]


@pytest.fixture
def user_cache(store: SqliteTableStore) -> UserIndexCache:
    return UserIndexCache(store, ttl_seconds=60)


@pytest.fixture
def users(
    store: SqliteTableStore,
    slack: SlackApi,
    user_cache: UserIndexCache,
    logger: structlog.stdlib.BoundLogger,
) -> UserDirectory:
    return UserDirectory(store, slack, user_cache, logger)


@pytest.fixture
def channels(
    store: SqliteTableStore, slack: SlackApi, logger: structlog.stdlib.BoundLogger
) -> ChannelDirectory:
    return ChannelDirectory(store, slack, logger)


@pytest.fixture
def repairer(
    store: SqliteTableStore, logger: structlog.stdlib.BoundLogger
) -> ThreadRepairer:
    return ThreadRepairer(store, logger, excluded_tables=("Sheet1",))


@pytest.fixture
def writer(
    store: SqliteTableStore,
    repairer: ThreadRepairer,
    logger: structlog.stdlib.BoundLogger,
) -> MessageWriter:
    return MessageWriter(
        store, repairer, ZoneInfo("Asia/Tokyo"), chunk_size=2, logger=logger
    )


@pytest.fixture
def progress(
    properties: SqlitePropertyStore, logger: structlog.stdlib.BoundLogger
) -> ProgressRepository:
    return ProgressRepository(properties, logger)
