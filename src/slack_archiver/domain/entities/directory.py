"""User and channel directory entries stored in the system tables."""

from collections.abc import Mapping

from pydantic import BaseModel

USER_TABLE = "_user"
USER_HEADER: tuple[str, ...] = ("index", "userId", "name", "email")

CHANNEL_MAP_TABLE = "_channels"
CHANNEL_MAP_HEADER: tuple[str, ...] = ("channelId", "lastKnownName")

# Tables that never hold channel history
SYSTEM_TABLES = frozenset({USER_TABLE, CHANNEL_MAP_TABLE})


class UserEntry(BaseModel):
    """A workspace member as stored in the user table."""

    index: int
    user_id: str
    name: str
    email: str = ""

    @classmethod
    def from_values(cls, values: Mapping[str, str]) -> "UserEntry | None":
        """Build an entry, or return None when the index cell is not numeric."""
        try:
            index = int(str(values.get("index", "")).strip())
        except ValueError:
            return None
        return cls(
            index=index,
            user_id=str(values.get("userId", "")),
            name=str(values.get("name", "")),
            email=str(values.get("email", "")),
        )

    def to_values(self) -> dict[str, str]:
        return {
            "index": str(self.index),
            "userId": self.user_id,
            "name": self.name,
            "email": self.email,
        }


class ChannelMapEntry(BaseModel):
    """Link between a Slack channel id and its table name.

    Entries created from an export without channel metadata carry an empty
    ``channel_id``.
    """

    channel_id: str = ""
    last_known_name: str

    @classmethod
    def from_values(cls, values: Mapping[str, str]) -> "ChannelMapEntry":
        return cls(
            channel_id=str(values.get("channelId", "")).strip(),
            last_known_name=str(values.get("lastKnownName", "")).strip(),
        )

    def to_values(self) -> dict[str, str]:
        return {"channelId": self.channel_id, "lastKnownName": self.last_known_name}
