"""Archive row entity and the Slack timestamp value type."""

from collections.abc import Mapping
from datetime import datetime, tzinfo
from decimal import Decimal, InvalidOperation
from enum import Enum

from pydantic import BaseModel, ConfigDict

# Bumped whenever ROW_HEADER changes shape
ROW_SCHEMA_VERSION = 1

ROW_HEADER: tuple[str, ...] = (
    "index",
    "createdAt",
    "userIndex",
    "type",
    "content",
    "parentIndex",
    "parentTs",
    "slackTs",
    "fileUrl",
)

CREATED_AT_FORMAT = "%Y/%m/%d %H:%M:%S"

# Prefix that keeps spreadsheet front-ends from coercing "1700000000.000100"
# into a float
TS_ESCAPE = "'"


class RowType(str, Enum):
    """Kind of an archived row."""

    MESSAGE = "MESSAGE"
    REPLY = "REPLY"
    REACTION = "REACTION"
    FILE = "FILE"
    EDITED = "EDITED"
    THREAD_START = "THREAD_START"


class SlackTs(BaseModel):
    """Slack's per-message timestamp ("<seconds>.<micros>").

    The value is the dedup key of a row. It is kept as text and only
    interpreted numerically for ordering and date conversion.
    """

    model_config = ConfigDict(frozen=True)

    value: str

    @classmethod
    def parse(cls, raw: object) -> "SlackTs | None":
        """Parse a stored or API value, tolerating the escape prefix.

        Returns:
            The timestamp, or None for empty input.
        """
        if raw is None:
            return None
        text = str(raw).strip()
        if text.startswith(TS_ESCAPE):
            text = text[len(TS_ESCAPE) :]
        if not text:
            return None
        return cls(value=text)

    def serialize(self) -> str:
        """Return the stored cell form."""
        return f"{TS_ESCAPE}{self.value}"

    @property
    def sort_key(self) -> tuple[int, int]:
        """Numeric ordering key; unparseable values sort first.

        The fraction is read as microseconds, so "1.5" orders after "1.10".
        """
        seconds, _, fraction = self.value.partition(".")
        try:
            return int(seconds), int(fraction.ljust(6, "0")[:6])
        except ValueError:
            return -1, 0

    def to_datetime(self, tz: tzinfo) -> datetime | None:
        try:
            return datetime.fromtimestamp(float(Decimal(self.value)), tz)
        except (InvalidOperation, OverflowError, ValueError):
            return None

    def __str__(self) -> str:
        return self.value


def serialize_ts(ts: SlackTs | None) -> str:
    """Serialize an optional timestamp; empty stays a bare escape marker."""
    return ts.serialize() if ts is not None else TS_ESCAPE


def format_created_at(moment: datetime) -> str:
    return moment.strftime(CREATED_AT_FORMAT)


def _parse_int(raw: str) -> int | None:
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


class ArchiveRow(BaseModel):
    """One row of a channel table.

    Rows are converted from and to header-keyed cell mappings, so column
    order only matters to the table store.

    Attributes:
        index: Stable per-table identity; None when the cell is malformed.
        created_at: Display timestamp in the archive time zone.
        user_index: Numeric user directory index, or the raw Slack user id.
        type: Row kind; None when the cell holds an unknown value.
        content: Normalized text, or ":name:" for reactions.
        parent_index: Index of the parent row once resolved.
        parent_ts: Timestamp of the parent message for replies and reactions.
        slack_ts: Timestamp of the source message.
        file_url: Newline separated "url|name" pairs.
    """

    index: int | None = None
    created_at: str = ""
    user_index: int | str | None = None
    type: RowType | None = RowType.MESSAGE
    content: str = ""
    parent_index: int | None = None
    parent_ts: SlackTs | None = None
    slack_ts: SlackTs | None = None
    file_url: str = ""

    @classmethod
    def from_values(cls, values: Mapping[str, str]) -> "ArchiveRow":
        """Build a row from a header-keyed mapping without raising."""
        raw_user = str(values.get("userIndex", "")).strip()
        raw_type = str(values.get("type", "")).strip()
        parent_raw = str(values.get("parentIndex", "")).strip()
        try:
            row_type: RowType | None = RowType(raw_type)
        except ValueError:
            row_type = None
        user_index: int | str | None
        if not raw_user:
            user_index = None
        elif raw_user.isdigit():
            user_index = int(raw_user)
        else:
            user_index = raw_user
        return cls(
            index=_parse_int(values.get("index", "")),
            created_at=str(values.get("createdAt", "")),
            user_index=user_index,
            type=row_type,
            content=str(values.get("content", "")),
            parent_index=_parse_int(parent_raw) if parent_raw else None,
            parent_ts=SlackTs.parse(values.get("parentTs")),
            slack_ts=SlackTs.parse(values.get("slackTs")),
            file_url=str(values.get("fileUrl", "")),
        )

    def to_values(self) -> dict[str, str]:
        """Return the header-keyed cell mapping of the row."""
        return {
            "index": "" if self.index is None else str(self.index),
            "createdAt": self.created_at,
            "userIndex": "" if self.user_index is None else str(self.user_index),
            "type": self.type.value if self.type is not None else "",
            "content": self.content,
            "parentIndex": "" if self.parent_index is None else str(self.parent_index),
            "parentTs": serialize_ts(self.parent_ts),
            "slackTs": serialize_ts(self.slack_ts),
            "fileUrl": self.file_url,
        }
