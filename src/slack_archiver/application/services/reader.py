"""Read-side views over the archive for the web reader."""

import hmac

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from structlog.stdlib import BoundLogger

from slack_archiver.application.services.mentions import render_mentions
from slack_archiver.application.services.user_directory import load_users
from slack_archiver.domain.entities.directory import CHANNEL_MAP_TABLE, ChannelMapEntry, UserEntry
from slack_archiver.domain.entities.row import ArchiveRow, RowType
from slack_archiver.domain.repositories.table_store import TableStore

DEFAULT_ATTACHMENT_NAME = "Attachment"
HIDDEN_TABLE_PREFIXES = ("_", "Template")


class _View(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserView(_View):
    index: int
    user_id: str
    name: str
    email: str = ""

    @classmethod
    def from_entry(cls, entry: UserEntry) -> "UserView":
        return cls(
            index=entry.index, user_id=entry.user_id, name=entry.name, email=entry.email
        )


class FileLink(_View):
    url: str
    name: str


class ReactionGroup(_View):
    name: str
    count: int = 0
    users: list[str] = Field(default_factory=list)


class MessageView(_View):
    """One message with its replies and aggregated reactions."""

    index: int
    created_at: str
    user_index: int | str | None
    type: RowType | None
    content: str
    parent_index: int | None
    parent_ts: str
    slack_ts: str
    file_url: str
    files: list[FileLink] = Field(default_factory=list)
    user: UserView | None = None
    replies: list["MessageView"] = Field(default_factory=list)
    reactions: list[ReactionGroup] = Field(default_factory=list)


class ChannelView(_View):
    id: str
    name: str


def parse_files(file_url: str) -> list[FileLink]:
    """Split a fileUrl cell into links; names may themselves contain "|"."""
    links = []
    for line in file_url.split("\n"):
        if not line:
            continue
        url, separator, name = line.partition("|")
        links.append(FileLink(url=url, name=name if separator else DEFAULT_ATTACHMENT_NAME))
    return links


class ArchiveReader:
    """Builds the channel list, message trees and user map from the tables.

    Rows sharing a slackTs are collapsed to the one with the lowest index.
    Parents come from parentIndex, or from parentTs when repair has not run
    yet on the row.

    Args:
        store: Table store.
        credential_table: Table whose first data cell holds the shared password.
        logger: Structured logger.
    """

    def __init__(self, store: TableStore, credential_table: str, logger: BoundLogger) -> None:
        self._store = store
        self._credential_table = credential_table
        self._logger = logger

    async def get_users(self) -> dict[int, UserEntry]:
        return {entry.index: entry for entry in await load_users(self._store)}

    async def get_channels(self) -> list[ChannelView]:
        allowed: set[str] = set()
        if await self._store.table_exists(CHANNEL_MAP_TABLE):
            for row in await self._store.read_rows(CHANNEL_MAP_TABLE):
                name = ChannelMapEntry.from_values(row.values).last_known_name
                if name:
                    allowed.add(name)

        names = []
        for table in await self._store.list_tables():
            title = table.strip()
            if title.startswith(HIDDEN_TABLE_PREFIXES) or title == self._credential_table:
                continue
            if allowed and title not in allowed:
                continue
            names.append(table)
        return [ChannelView(id=name, name=name) for name in sorted(names)]

    async def get_messages(self, channel: str) -> list[MessageView]:
        """Return the root messages of a channel with replies and reactions."""
        if not await self._store.table_exists(channel):
            return []
        users = await self.get_users()

        rows = [ArchiveRow.from_values(row.values) for row in await self._store.read_rows(channel)]
        rows = sorted(
            (row for row in rows if row.index is not None), key=lambda row: row.index
        )

        by_index: dict[int, MessageView] = {}
        index_by_ts: dict[str, int] = {}
        for row in rows:
            if row.slack_ts is not None:
                if row.slack_ts.value in index_by_ts:
                    continue
                index_by_ts[row.slack_ts.value] = row.index
            user = users.get(row.user_index) if isinstance(row.user_index, int) else None
            by_index[row.index] = MessageView(
                index=row.index,
                created_at=row.created_at,
                user_index=row.user_index,
                type=row.type,
                content=(
                    row.content
                    if row.type is RowType.REACTION
                    else render_mentions(row.content, users)
                ),
                parent_index=row.parent_index,
                parent_ts=row.parent_ts.value if row.parent_ts else "",
                slack_ts=row.slack_ts.value if row.slack_ts else "",
                file_url=row.file_url,
                files=parse_files(row.file_url),
                user=UserView.from_entry(user) if user else None,
            )

        roots: list[MessageView] = []
        for message in by_index.values():
            parent_index = message.parent_index
            if parent_index is None and message.parent_ts:
                parent_index = index_by_ts.get(message.parent_ts)
            parent = by_index.get(parent_index) if parent_index is not None else None

            if message.type is RowType.REACTION:
                if parent is None:
                    continue
                group = next(
                    (g for g in parent.reactions if g.name == message.content), None
                )
                if group is None:
                    group = ReactionGroup(name=message.content)
                    parent.reactions.append(group)
                group.count += 1
                if message.user is not None:
                    group.users.append(message.user.name)
            elif parent is not None and parent is not message:
                parent.replies.append(message)
            else:
                roots.append(message)

        for root in roots:
            root.replies.sort(key=lambda reply: reply.created_at)
        return sorted(roots, key=lambda message: message.created_at)

    async def get_shared_password(self) -> str | None:
        if not await self._store.table_exists(self._credential_table):
            self._logger.warning(
                "Credential table not found", table=self._credential_table
            )
            return None
        header = await self._store.get_header(self._credential_table)
        rows = await self._store.read_rows(self._credential_table, count=1)
        if not header or not rows:
            return None
        return rows[0].values.get(header[0]) or None

    async def validate_user(self, email: str, password: str) -> UserEntry | None:
        """Check the shared password and find the user by email.

        Returns:
            The matching user, or None when the password is not configured,
            does not match, or no user has that email.
        """
        shared = await self.get_shared_password()
        if not shared:
            self._logger.error("Shared password not configured")
            return None
        if not hmac.compare_digest(password.encode(), shared.encode()):
            return None
        for entry in await load_users(self._store):
            if entry.email and entry.email == email:
                return entry
        return None
