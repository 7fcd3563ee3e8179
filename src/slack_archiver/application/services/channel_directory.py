"""Channel directory: channel id to table name map, joins and renames."""

import re

from jinja2 import Template
from structlog.stdlib import BoundLogger

from slack_archiver.domain.entities.directory import (
    CHANNEL_MAP_HEADER,
    CHANNEL_MAP_TABLE,
    ChannelMapEntry,
)
from slack_archiver.domain.entities.row import ROW_HEADER, ROW_SCHEMA_VERSION
from slack_archiver.domain.repositories.table_store import (
    TableExistsError,
    TableRow,
    TableStore,
)
from slack_archiver.infrastructure.slack.client import SlackApi

MAX_TABLE_NAME_LENGTH = 31
DEFAULT_TABLE_NAME = "unnamed_channel"
ILLEGAL_TABLE_CHARS = re.compile(r"[:\\/?*\[\]]")

SYNC_CHANNEL_TYPES = "public_channel,private_channel,mpim"

SYNC_OK_TEMPLATE = Template(
    "Channel sync finished: registered {{ added }} new channels, "
    "joined {{ joined }} channels."
)
SYNC_FAILED_TEMPLATE = Template("Error: could not fetch the channel list from Slack.")
DEDUP_TEMPLATE = Template("Channel map deduplicated: {{ before }} -> {{ after }} entries.")


def sanitize_table_name(name: str | None) -> str:
    """Make a channel name usable as a table name.

    >>> sanitize_table_name("a/b:c")
    'a_b_c'
    """
    if not name:
        return DEFAULT_TABLE_NAME
    return ILLEGAL_TABLE_CHARS.sub("_", name)[:MAX_TABLE_NAME_LENGTH]


def fix_mojibake(name: str) -> str:
    """Recover a UTF-8 name that was decoded with a single-byte codec.

    Unzip tools on Windows commonly decode UTF-8 entry names as CP437 or
    Latin-1. Names that do not round-trip are returned unchanged.

    >>> fix_mojibake("Ã©tÃ©")
    'été'
    """
    if not name:
        return ""
    for codec in ("latin-1", "cp437"):
        try:
            return name.encode(codec).decode("utf-8")
        except (UnicodeEncodeError, UnicodeDecodeError):
            continue
    return name


def is_joinable(channel: dict) -> bool:
    """Public, unarchived channels the bot has not joined yet."""
    return (
        not channel.get("is_member")
        and not channel.get("is_archived")
        and bool(channel.get("is_channel"))
        and not channel.get("is_private")
    )


class ChannelDirectory:
    """Maintains the channel map and the channel tables it points to.

    Args:
        store: Table store.
        slack: Slack Web API wrapper.
        logger: Structured logger.
    """

    def __init__(self, store: TableStore, slack: SlackApi, logger: BoundLogger) -> None:
        self._store = store
        self._slack = slack
        self._logger = logger

    async def _map_rows(self) -> list[TableRow]:
        await self._store.get_or_create_table(CHANNEL_MAP_TABLE, CHANNEL_MAP_HEADER)
        return await self._store.read_rows(CHANNEL_MAP_TABLE)

    async def entries(self) -> list[ChannelMapEntry]:
        return [ChannelMapEntry.from_values(row.values) for row in await self._map_rows()]

    async def ensure_channel_table(self, name: str) -> bool:
        """Create a channel table with the row header if it is missing."""
        return await self._store.get_or_create_table(
            name, ROW_HEADER, schema_version=ROW_SCHEMA_VERSION
        )

    async def register_table(self, name: str, channel_id: str = "") -> None:
        """Add a map entry for a table created outside the API path.

        Nothing is added when the id, or the name of an id-less entry, is
        already present.
        """
        for entry in await self.entries():
            if channel_id and entry.channel_id == channel_id:
                return
            if not channel_id and entry.last_known_name == name:
                return
        await self._store.append_rows(
            CHANNEL_MAP_TABLE,
            [ChannelMapEntry(channel_id=channel_id, last_known_name=name).to_values()],
        )

    async def get_table_for_channel(
        self, channel_id: str | None, known_name: str | None = None
    ) -> str | None:
        """Return the table of a channel, creating or renaming it as needed.

        Args:
            channel_id: Slack channel id.
            known_name: Current channel name when the caller already has it;
                saves a conversations.info call.

        Returns:
            The table name, or None without a channel id.
        """
        if not channel_id:
            return None

        rows = await self._map_rows()
        mapped = next(
            (
                row
                for row in rows
                if ChannelMapEntry.from_values(row.values).channel_id == channel_id
            ),
            None,
        )
        mapped_name = (
            ChannelMapEntry.from_values(mapped.values).last_known_name if mapped else ""
        )

        raw_name = known_name or await self._slack.get_channel_name(channel_id)
        if raw_name is None:
            # Unresolvable name: keep what is mapped rather than renaming to the id
            raw_name = mapped_name or channel_id
        current_name = sanitize_table_name(raw_name)

        if mapped is None:
            await self.ensure_channel_table(current_name)
            await self._store.append_rows(
                CHANNEL_MAP_TABLE,
                [
                    ChannelMapEntry(
                        channel_id=channel_id, last_known_name=current_name
                    ).to_values()
                ],
            )
            self._logger.info(
                "Channel registered", channel_id=channel_id, table=current_name
            )
            return current_name

        if mapped_name == current_name:
            await self.ensure_channel_table(current_name)
            return current_name

        if mapped_name and await self._store.table_exists(mapped_name):
            try:
                await self._store.rename_table(mapped_name, current_name)
            except TableExistsError:
                self._logger.warning(
                    "Rename collides with an existing table, keeping old name",
                    channel_id=channel_id,
                    old_name=mapped_name,
                    new_name=current_name,
                )
                return mapped_name
        else:
            await self.ensure_channel_table(current_name)

        await self._store.update_cell(
            CHANNEL_MAP_TABLE, mapped.number, "lastKnownName", current_name
        )
        self._logger.info(
            "Channel renamed",
            channel_id=channel_id,
            old_name=mapped_name,
            new_name=current_name,
        )
        return current_name

    async def sync_and_join(self) -> str:
        """Register unknown channels and join eligible public ones.

        Names already mapped for a known id are never overwritten here; the
        map is deduplicated afterwards.

        Returns:
            A status message for the operator.
        """
        channels, ok = await self._slack.list_channels(SYNC_CHANNEL_TYPES)
        if not ok and not channels:
            return SYNC_FAILED_TEMPLATE.render()

        known_ids = {entry.channel_id for entry in await self.entries() if entry.channel_id}
        joined = 0
        new_entries: list[ChannelMapEntry] = []
        for channel in channels:
            channel_id = channel.get("id")
            if not channel_id:
                continue
            if is_joinable(channel):
                if await self._slack.join_channel(channel_id):
                    joined += 1
            if channel_id not in known_ids:
                known_ids.add(channel_id)
                new_entries.append(
                    ChannelMapEntry(
                        channel_id=channel_id,
                        last_known_name=sanitize_table_name(channel.get("name") or channel_id),
                    )
                )

        if new_entries:
            await self._store.append_rows(
                CHANNEL_MAP_TABLE, [entry.to_values() for entry in new_entries]
            )
        await self.deduplicate()

        self._logger.info(
            "Channels synchronized", added=len(new_entries), joined=joined
        )
        return SYNC_OK_TEMPLATE.render(added=len(new_entries), joined=joined)

    async def deduplicate(self) -> str:
        """Merge map entries sharing a table name.

        An entry carrying a channel id wins over a name-only entry; between
        two id-carrying entries the first one is kept. Entries without a
        name are dropped and the result is sorted by name.
        """
        entries = await self.entries()
        by_name: dict[str, ChannelMapEntry] = {}
        for entry in entries:
            if not entry.last_known_name:
                continue
            existing = by_name.get(entry.last_known_name)
            if existing is None or (not existing.channel_id and entry.channel_id):
                by_name[entry.last_known_name] = entry

        merged = sorted(by_name.values(), key=lambda e: e.last_known_name)
        await self._store.replace_rows(
            CHANNEL_MAP_TABLE, [entry.to_values() for entry in merged]
        )
        return DEDUP_TEMPLATE.render(before=len(entries), after=len(merged))
