"""Resumable import of a Slack export directory."""

import json
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from jinja2 import Template
from structlog.stdlib import BoundLogger

from slack_archiver.application.handlers import JobOutcome
from slack_archiver.application.services.channel_directory import (
    ChannelDirectory,
    fix_mojibake,
    sanitize_table_name,
)
from slack_archiver.application.services.message_writer import MessageWriter
from slack_archiver.application.services.progress import ProgressRepository
from slack_archiver.application.services.thread_repair import ThreadRepairer
from slack_archiver.application.services.user_directory import UserDirectory
from slack_archiver.domain.entities.progress import IMPORT_PROGRESS_KEY, ImportProgress

USERS_FILE = "users.json"
CHANNELS_FILE = "channels.json"

MISSING_ROOT_TEMPLATE = Template("Error: export directory not found: {{ root }}")
PAUSED_TEMPLATE = Template(
    "Continuing the import; resuming automatically. "
    "(progress: {{ done }} / {{ total }} folders)"
)
CONTINUABLE_TEMPLATE = Template(
    "Continuable error: {{ what }} failed. Progress is kept; run the import again."
    "\n(detail: {{ error }})"
)
DONE_TEMPLATE = Template(
    "Import of {{ total }} folders finished.\n{{ repair }}"
)


def list_folders(root: Path) -> list[Path]:
    """Channel folders of an export, in name order."""
    return sorted(path for path in root.iterdir() if path.is_dir())


def load_folder_messages(folder: Path) -> list[dict[str, Any]]:
    """Concatenate the message arrays of every ``*.json`` file in a folder.

    Raises:
        ValueError: If a file is not valid JSON or not a JSON array.
        OSError: If a file cannot be read.
    """
    messages: list[dict[str, Any]] = []
    for path in sorted(folder.glob("*.json")):
        payload = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(payload, list):
            raise ValueError(f"{path.name} does not hold a message array")
        messages.extend(item for item in payload if isinstance(item, dict))
    return messages


def load_channel_ids(root: Path) -> dict[str, str]:
    """Map sanitized channel names to ids from ``channels.json``, if present.

    Raises:
        ValueError: If the file is not valid JSON.
    """
    path = root / CHANNELS_FILE
    if not path.is_file():
        return {}
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError(f"{CHANNELS_FILE} does not hold a channel array")
    return {
        sanitize_table_name(channel.get("name")): channel["id"]
        for channel in payload
        if isinstance(channel, dict) and channel.get("id")
    }


class BulkImportJob:
    """Imports an export one folder at a time.

    A folder is marked complete only after all of its files have been
    written; an interrupted folder is processed again from the start,
    which deduplication makes harmless. Thread repair runs once after the
    last folder and the progress state is deleted afterwards.

    Args:
        root: Export directory.
        progress: Progress state repository.
        users: User directory, fed from ``users.json``.
        channels: Channel directory.
        writer: Deduplicating message writer.
        repairer: Thread repair pass.
        time_budget: Seconds of work per invocation.
        logger: Structured logger.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        root: Path,
        progress: ProgressRepository,
        users: UserDirectory,
        channels: ChannelDirectory,
        writer: MessageWriter,
        repairer: ThreadRepairer,
        time_budget: float,
        logger: BoundLogger,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._root = root
        self._progress = progress
        self._users = users
        self._channels = channels
        self._writer = writer
        self._repairer = repairer
        self._time_budget = time_budget
        self._logger = logger
        self._clock = clock

    async def has_progress(self) -> bool:
        return await self._progress.exists(IMPORT_PROGRESS_KEY)

    async def reset(self) -> None:
        await self._progress.delete(IMPORT_PROGRESS_KEY)
        self._logger.info("Import progress reset")

    def _normalize_folder(self, folder: Path) -> tuple[Path, str]:
        """Return the folder and its table name, renaming mis-decoded folders."""
        name = sanitize_table_name(fix_mojibake(folder.name))
        if name == folder.name:
            return folder, name
        target = folder.with_name(name)
        if target.exists():
            return folder, name
        try:
            folder.rename(target)
        except OSError as e:
            self._logger.warning(
                "Could not rename export folder", folder=folder.name, error=str(e)
            )
            return folder, name
        return target, name

    async def run_once(self) -> JobOutcome:
        """Run one invocation of the import."""
        if not self._root.is_dir():
            return JobOutcome(message=MISSING_ROOT_TEMPLATE.render(root=self._root))

        started = self._clock()
        state = await self._progress.load(IMPORT_PROGRESS_KEY, ImportProgress)
        if state is None:
            state = ImportProgress()

        folders = list_folders(self._root)
        if not state.total_folders:
            state.total_folders = len(folders)
            await self._progress.save(IMPORT_PROGRESS_KEY, state)

        if not state.user_sync_done:
            users_path = self._root / USERS_FILE
            if users_path.is_file():
                try:
                    members = json.loads(users_path.read_text(encoding="utf-8"))
                    if not isinstance(members, list):
                        raise ValueError("users.json does not hold a member array")
                    await self._users.merge_export_users(members)
                except (OSError, ValueError) as e:
                    self._logger.error("Reading users.json failed", error=str(e))
                    return JobOutcome(
                        message=CONTINUABLE_TEMPLATE.render(
                            what="reading users.json", error=e
                        )
                    )
                state.user_sync_done = True
                await self._progress.save(IMPORT_PROGRESS_KEY, state)

        try:
            channel_ids = load_channel_ids(self._root)
        except (OSError, ValueError) as e:
            self._logger.error("Reading channels.json failed", error=str(e))
            return JobOutcome(
                message=CONTINUABLE_TEMPLATE.render(what="reading channels.json", error=e)
            )

        lookup = await self._users.cache.lookup()
        processed = 0
        for folder in folders:
            folder, name = self._normalize_folder(folder)
            if name in state.completed_folders:
                continue

            if processed and self._clock() - started > self._time_budget:
                await self._progress.save(IMPORT_PROGRESS_KEY, state)
                done = len(state.completed_folders)
                self._logger.info(
                    "Import paused", done=done, total=state.total_folders
                )
                return JobOutcome(
                    message=PAUSED_TEMPLATE.render(done=done, total=state.total_folders),
                    reschedule=True,
                )

            try:
                messages = load_folder_messages(folder)
                await self._channels.ensure_channel_table(name)
                await self._channels.register_table(name, channel_ids.get(name, ""))
                count = await self._writer.append_messages(
                    name, messages, lookup, skip_repair=True
                )
            except Exception as e:
                self._logger.error(
                    "Folder import failed", folder=name, error=str(e), exc_info=True
                )
                return JobOutcome(
                    message=CONTINUABLE_TEMPLATE.render(
                        what=f'importing "{name}"', error=e
                    )
                )

            processed += 1
            state.completed_folders.append(name)
            await self._progress.save(IMPORT_PROGRESS_KEY, state)
            self._logger.info("Folder imported", folder=name, count=count)

        state.is_repairing = True
        await self._progress.save(IMPORT_PROGRESS_KEY, state)

        async def heartbeat() -> None:
            await self._progress.save(IMPORT_PROGRESS_KEY, state)

        repair = await self._repairer.repair_all(heartbeat=heartbeat)
        await self._progress.delete(IMPORT_PROGRESS_KEY)
        self._logger.info("Import finished", total=state.total_folders)
        return JobOutcome(
            message=DONE_TEMPLATE.render(total=state.total_folders, repair=repair)
        )
