"""Resumable job progress persisted in the property store."""

import time

from pydantic import BaseModel, ConfigDict, Field

BACKFILL_PROGRESS_KEY = "API_SYNC_STATUS"
IMPORT_PROGRESS_KEY = "IMPORT_STATUS"


def now_millis() -> int:
    return int(time.time() * 1000)


class ProgressState(BaseModel):
    """Common part of all progress states.

    Field aliases keep the persisted JSON in camelCase.
    """

    model_config = ConfigDict(populate_by_name=True)

    last_updated: int | None = Field(default=None, alias="lastUpdated")

    def touch(self) -> None:
        self.last_updated = now_millis()


class ChannelRef(BaseModel):
    """Channel snapshot taken when a backfill starts."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    is_private: bool = False
    is_member: bool = False


class BackfillProgress(ProgressState):
    """Progress of the API backfill across all channels.

    ``last_index`` is the position in ``channels`` of the next channel to
    process; the channel list is reused until the state is deleted.
    """

    last_index: int = Field(default=0, alias="lastIndex")
    channels: list[ChannelRef] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.channels)


class ImportProgress(ProgressState):
    """Progress of a bulk import from an export directory."""

    completed_folders: list[str] = Field(default_factory=list, alias="completedFolders")
    user_sync_done: bool = Field(default=False, alias="userSyncDone")
    total_folders: int = Field(default=0, alias="totalFolders")
    is_repairing: bool = Field(default=False, alias="isRepairing")
