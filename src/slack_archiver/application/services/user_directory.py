"""User directory: the _user table, its sync, and the id to index cache."""

import time
from collections.abc import Callable, Iterable
from typing import Any

from jinja2 import Template
from structlog.stdlib import BoundLogger

from slack_archiver.domain.entities.directory import USER_HEADER, USER_TABLE, UserEntry
from slack_archiver.domain.repositories.table_store import TableStore
from slack_archiver.infrastructure.cache import TTLCache
from slack_archiver.infrastructure.slack.client import SlackApi

SYNC_OK_TEMPLATE = Template("Synchronized {{ count }} users.")
SYNC_FAILED_TEMPLATE = Template(
    "Error: could not fetch the member list from Slack ({{ error }})."
)


class UserIndexCache:
    """Process-scoped user id to index lookup.

    The full table is loaded once into memory; resolved ids are also kept
    in a short-lived per-id layer. ``invalidate`` drops both and must be
    called whenever the user table is rewritten.

    Args:
        store: Table store holding the user table.
        ttl_seconds: Lifetime of per-id entries.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        store: TableStore,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._lookup: dict[str, int] | None = None
        self._recent: TTLCache[int] = TTLCache(ttl_seconds, clock)

    async def lookup(self) -> dict[str, int]:
        """Return the full user id to index map, loading it if needed."""
        if self._lookup is None:
            self._lookup = {
                entry.user_id: entry.index for entry in await load_users(self._store)
            }
        return self._lookup

    async def resolve(self, user_id: str) -> int | None:
        cached = self._recent.get(user_id)
        if cached is not None:
            return cached
        index = (await self.lookup()).get(user_id)
        if index is not None:
            self._recent.put(user_id, index)
        return index

    def invalidate(self) -> None:
        self._lookup = None
        self._recent.clear()


async def load_users(store: TableStore) -> list[UserEntry]:
    """Read all well-formed entries of the user table."""
    if not await store.table_exists(USER_TABLE):
        return []
    entries = []
    for row in await store.read_rows(USER_TABLE):
        entry = UserEntry.from_values(row.values)
        if entry is not None and entry.user_id:
            entries.append(entry)
    return entries


def member_to_entry(index: int, member: dict[str, Any]) -> UserEntry:
    profile = member.get("profile") or {}
    return UserEntry(
        index=index,
        user_id=str(member.get("id", "")),
        name=profile.get("real_name") or member.get("real_name") or member.get("name") or "",
        email=profile.get("email") or "",
    )


class UserDirectory:
    """Keeps the user table in step with the workspace member list.

    Args:
        store: Table store.
        slack: Slack Web API wrapper.
        cache: Shared user index cache, invalidated after every rewrite.
        logger: Structured logger.
    """

    def __init__(
        self,
        store: TableStore,
        slack: SlackApi,
        cache: UserIndexCache,
        logger: BoundLogger,
    ) -> None:
        self._store = store
        self._slack = slack
        self._cache = cache
        self._logger = logger
        self._recent_misses: TTLCache[bool] = TTLCache(60.0)

    @property
    def cache(self) -> UserIndexCache:
        return self._cache

    async def refresh(self) -> int | None:
        """Replace the user table with the current member list.

        Indexes are reassigned from 1 in the order Slack returns members, so
        previously held indexes must be treated as stale afterwards.

        Returns:
            Number of users written, or None if the member list was
            unavailable and the table was left untouched.
        """
        members, ok = await self._slack.list_members()
        if not ok:
            self._logger.warning(
                "Member list incomplete, user table left untouched",
                received=len(members),
            )
            return None

        entries = [
            member_to_entry(position, member)
            for position, member in enumerate(members, start=1)
        ]
        await self._store.get_or_create_table(USER_TABLE, USER_HEADER)
        await self._store.replace_rows(USER_TABLE, [e.to_values() for e in entries])
        self._cache.invalidate()
        self._logger.info("User table synchronized", count=len(entries))
        return len(entries)

    async def sync(self) -> str:
        """Run ``refresh`` and return a status message for the operator."""
        count = await self.refresh()
        if count is None:
            return SYNC_FAILED_TEMPLATE.render(error="users.list failed")
        return SYNC_OK_TEMPLATE.render(count=count)

    async def merge_export_users(self, members: Iterable[dict[str, Any]]) -> int:
        """Append users from an export's users.json that are not yet known.

        Returns:
            Number of users added.
        """
        await self._store.get_or_create_table(USER_TABLE, USER_HEADER)
        existing = await load_users(self._store)
        known_ids = {entry.user_id for entry in existing}
        next_index = max((entry.index for entry in existing), default=0) + 1

        new_entries = []
        for member in members:
            user_id = str(member.get("id", ""))
            if not user_id or user_id in known_ids:
                continue
            known_ids.add(user_id)
            new_entries.append(member_to_entry(next_index, member))
            next_index += 1

        if new_entries:
            await self._store.append_rows(
                USER_TABLE, [e.to_values() for e in new_entries]
            )
            self._cache.invalidate()
        self._logger.info("Export users merged", added=len(new_entries))
        return len(new_entries)

    async def resolve_user_index(self, user_id: str | None) -> int | str:
        """Map a Slack user id to its index, syncing once for unknown ids.

        Returns:
            The index, the raw id when it stays unknown, or "" for no id.
        """
        if not user_id:
            return ""
        index = await self._cache.resolve(user_id)
        if index is not None:
            return index
        if self._recent_misses.add_if_absent(user_id, True):
            self._logger.info("Unknown user, synchronizing directory", user_id=user_id)
            await self.sync()
            index = await self._cache.resolve(user_id)
        return index if index is not None else user_id
