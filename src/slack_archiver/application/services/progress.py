"""Persistence of batch job progress in the property store."""

from typing import Any, TypeVar

from pydantic import ValidationError
from structlog.stdlib import BoundLogger

from slack_archiver.domain.entities.progress import (
    BACKFILL_PROGRESS_KEY,
    IMPORT_PROGRESS_KEY,
    BackfillProgress,
    ImportProgress,
    ProgressState,
)
from slack_archiver.domain.repositories.property_store import PropertyStore

S = TypeVar("S", bound=ProgressState)


class ProgressRepository:
    """Loads and stores progress states as camelCase JSON blobs.

    A stored blob that no longer validates is reported and treated as
    absent, which restarts the job from scratch.
    """

    def __init__(self, properties: PropertyStore, logger: BoundLogger) -> None:
        self._properties = properties
        self._logger = logger

    async def load(self, key: str, model: type[S]) -> S | None:
        raw = await self._properties.get(key)
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except ValidationError as e:
            self._logger.warning("Discarding unreadable progress", key=key, error=str(e))
            return None

    async def save(self, key: str, state: ProgressState) -> None:
        """Stamp ``lastUpdated`` and persist the state."""
        state.touch()
        await self._properties.set(key, state.model_dump_json(by_alias=True))

    async def delete(self, key: str) -> bool:
        return await self._properties.delete(key)

    async def exists(self, key: str) -> bool:
        return await self._properties.get(key) is not None

    async def snapshot(self) -> dict[str, Any]:
        """View of both progress states for status polling."""
        backfill = await self.load(BACKFILL_PROGRESS_KEY, BackfillProgress)
        bulk_import = await self.load(IMPORT_PROGRESS_KEY, ImportProgress)
        return {
            "import": bulk_import.model_dump(by_alias=True) if bulk_import else None,
            "api": backfill.model_dump(by_alias=True) if backfill else None,
        }
