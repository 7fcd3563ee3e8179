"""Resumable full-history backfill through the Slack Web API."""

import time
from collections.abc import Callable, Mapping
from typing import Any

from jinja2 import Template
from structlog.stdlib import BoundLogger

from slack_archiver.application.handlers import JobOutcome
from slack_archiver.application.services.channel_directory import ChannelDirectory
from slack_archiver.application.services.message_writer import MessageWriter
from slack_archiver.application.services.progress import ProgressRepository
from slack_archiver.application.services.user_directory import UserDirectory
from slack_archiver.domain.entities.progress import (
    BACKFILL_PROGRESS_KEY,
    BackfillProgress,
    ChannelRef,
)
from slack_archiver.infrastructure.slack.client import SlackApi

BACKFILL_CHANNEL_TYPES = "public_channel,private_channel"

PAUSED_TEMPLATE = Template(
    "Paused at the time limit; resuming automatically. "
    "({{ done }}/{{ total }} channels done)"
)
DONE_TEMPLATE = Template(
    "Backfill of all {{ total }} channels finished."
    "{% for line in results %}\n{{ line }}{% endfor %}"
)
CHANNEL_LIST_FAILED_TEMPLATE = Template(
    "Error: could not fetch the channel list from Slack. Run the backfill again."
)

# Number of per-channel results quoted in the completion message
RESULT_TAIL = 5


class BackfillJob:
    """Pulls every eligible channel's history, one whole channel at a time.

    The channel list is captured on the first invocation and reused until
    the progress state is deleted. Each invocation processes at least one
    channel, then stops at the first channel boundary past the time budget.

    Args:
        progress: Progress state repository.
        slack: Slack Web API wrapper.
        users: User directory, synchronized at the start of each invocation.
        channels: Channel directory used to find or create channel tables.
        writer: Deduplicating message writer.
        time_budget: Seconds of work per invocation.
        logger: Structured logger.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        progress: ProgressRepository,
        slack: SlackApi,
        users: UserDirectory,
        channels: ChannelDirectory,
        writer: MessageWriter,
        time_budget: float,
        logger: BoundLogger,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._progress = progress
        self._slack = slack
        self._users = users
        self._channels = channels
        self._writer = writer
        self._time_budget = time_budget
        self._logger = logger
        self._clock = clock

    async def has_progress(self) -> bool:
        return await self._progress.exists(BACKFILL_PROGRESS_KEY)

    async def reset(self) -> None:
        await self._progress.delete(BACKFILL_PROGRESS_KEY)
        self._logger.info("Backfill progress reset")

    async def _start(self) -> BackfillProgress | None:
        channels, ok = await self._slack.list_channels(BACKFILL_CHANNEL_TYPES)
        if not ok and not channels:
            return None
        state = BackfillProgress(
            channels=[
                ChannelRef(
                    id=channel["id"],
                    name=channel.get("name") or channel["id"],
                    is_private=bool(channel.get("is_private")),
                    is_member=bool(channel.get("is_member")),
                )
                for channel in channels
                if channel.get("id") and not channel.get("is_archived")
            ]
        )
        await self._progress.save(BACKFILL_PROGRESS_KEY, state)
        self._logger.info("Backfill started", channels=state.total)
        return state

    async def run_backfill(
        self, channel_id: str, table: str, lookup: Mapping[str, int]
    ) -> int:
        """Archive one channel's history and thread replies.

        Bot messages are skipped. Thread parents are fetched from the
        history only, never again from the reply pages.

        Returns:
            Number of rows written.
        """
        messages: list[dict[str, Any]] = []
        async for page in self._slack.history_pages(channel_id):
            for message in page:
                if not message.get("bot_id"):
                    messages.append(message)
                if (message.get("reply_count") or 0) > 0:
                    async for replies in self._slack.reply_pages(
                        channel_id, message["ts"]
                    ):
                        messages.extend(
                            reply
                            for reply in replies
                            if not reply.get("bot_id") and reply.get("ts") != message["ts"]
                        )
        return await self._writer.append_messages(table, messages, lookup)

    async def run_once(self) -> JobOutcome:
        """Run one invocation of the backfill."""
        started = self._clock()
        await self._users.sync()

        state = await self._progress.load(BACKFILL_PROGRESS_KEY, BackfillProgress)
        if state is None or not state.channels:
            state = await self._start()
            if state is None:
                return JobOutcome(message=CHANNEL_LIST_FAILED_TEMPLATE.render())

        lookup = await self._users.cache.lookup()
        results: list[str] = []
        processed = 0
        for position in range(state.last_index, state.total):
            if processed and self._clock() - started > self._time_budget:
                state.last_index = position
                await self._progress.save(BACKFILL_PROGRESS_KEY, state)
                self._logger.info(
                    "Backfill paused", done=position, total=state.total
                )
                return JobOutcome(
                    message=PAUSED_TEMPLATE.render(done=position, total=state.total),
                    reschedule=True,
                )

            channel = state.channels[position]
            log = self._logger.bind(channel=channel.name, channel_id=channel.id)
            if not channel.is_member and not channel.is_private:
                await self._slack.join_channel(channel.id)
            try:
                table = await self._channels.get_table_for_channel(
                    channel.id, channel.name
                )
                count = await self.run_backfill(channel.id, table or channel.id, lookup)
                results.append(f"OK {channel.name}: {count}")
                log.info("Channel backfilled", count=count)
            except Exception as e:
                log.error("Channel backfill failed", error=str(e), exc_info=True)
                results.append(f"FAILED {channel.name}: {e}")

            processed += 1
            state.last_index = position + 1
            await self._progress.save(BACKFILL_PROGRESS_KEY, state)

        await self._progress.delete(BACKFILL_PROGRESS_KEY)
        self._logger.info("Backfill finished", total=state.total)
        return JobOutcome(
            message=DONE_TEMPLATE.render(
                total=state.total, results=results[-RESULT_TAIL:]
            )
        )
