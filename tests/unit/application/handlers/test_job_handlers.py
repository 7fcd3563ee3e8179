"""Tests for JobHandler implementations."""

from typing import Any

from slack_archiver.application.handlers import (
    JobHandler,
    JobOutcome,
    ResumableJobHandler,
)
from slack_archiver.application.handlers.job_handlers import (
    BackfillJobHandler,
    BulkImportJobHandler,
    ChannelSyncJobHandler,
    InitialSetupJobHandler,
    JobHandlerRegistry,
    MissingConfigJobHandler,
    ThreadRepairJobHandler,
    UserSyncJobHandler,
)
from slack_archiver.application.services.channel_directory import ChannelDirectory
from slack_archiver.application.services.thread_repair import ThreadRepairer
from slack_archiver.application.services.user_directory import UserDirectory
from slack_archiver.domain.entities.directory import USER_TABLE
from slack_archiver.domain.entities.event import (
    BackfillEvent,
    ChannelSyncEvent,
    EventType,
    InitialSetupEvent,
    ThreadRepairEvent,
    UserSyncEvent,
)
from slack_archiver.infrastructure.persistence import SqliteTableStore


class FakeJob:
    """Minimal resumable job recording its calls."""

    def __init__(self) -> None:
        self.progress = True
        self.runs = 0

    async def run_once(self) -> JobOutcome:
        self.runs += 1
        return JobOutcome(message="partial", reschedule=True)

    async def has_progress(self) -> bool:
        return self.progress

    async def reset(self) -> None:
        self.progress = False


class TestProtocols:
    """Protocol conformance of the concrete handlers."""

    def test_simple_handlers_are_not_resumable(
        self, users: UserDirectory, channels: ChannelDirectory, repairer: ThreadRepairer
    ) -> None:
        handlers = [
            UserSyncJobHandler(users),
            ChannelSyncJobHandler(channels),
            InitialSetupJobHandler(users, channels),
            ThreadRepairJobHandler(repairer),
            MissingConfigJobHandler("slack"),
        ]

        for handler in handlers:
            assert isinstance(handler, JobHandler)
            assert not isinstance(handler, ResumableJobHandler)

    def test_batch_handlers_are_resumable(self) -> None:
        job: Any = FakeJob()

        assert isinstance(BackfillJobHandler(job), ResumableJobHandler)
        assert isinstance(BulkImportJobHandler(job), ResumableJobHandler)


class TestResumableHandlers:
    """Tests for BackfillJobHandler and BulkImportJobHandler."""

    async def test_delegates_to_job(self) -> None:
        job = FakeJob()
        handler = BackfillJobHandler(job)  # type: ignore[arg-type]

        outcome = await handler.run(BackfillEvent())

        assert outcome == JobOutcome(message="partial", reschedule=True)
        assert job.runs == 1
        assert await handler.has_progress() is True

        await handler.reset()

        assert await handler.has_progress() is False


class TestDirectoryHandlers:
    """Tests for user, channel and setup handlers."""

    async def test_user_sync(
        self, users: UserDirectory, store: SqliteTableStore, web_client: Any
    ) -> None:
        web_client.members = [{"id": "U01", "profile": {"real_name": "Ann"}}]

        outcome = await UserSyncJobHandler(users).run(UserSyncEvent())

        assert outcome.message == "Synchronized 1 users."
        assert outcome.reschedule is False
        assert await store.row_count(USER_TABLE) == 1

    async def test_channel_sync(
        self, channels: ChannelDirectory, web_client: Any
    ) -> None:
        web_client.channels = [{"id": "C01", "name": "general", "is_channel": True}]

        outcome = await ChannelSyncJobHandler(channels).run(ChannelSyncEvent())

        assert outcome.message.startswith("Channel sync finished: registered 1")
        assert web_client.joined == ["C01"]

    async def test_initial_setup_runs_both_syncs(
        self, users: UserDirectory, channels: ChannelDirectory, web_client: Any
    ) -> None:
        web_client.members = [
            {"id": "U01", "profile": {"real_name": "Ann"}},
            {"id": "U02", "profile": {"real_name": "Bo"}},
        ]
        web_client.channels = [{"id": "C01", "name": "general", "is_channel": True}]

        outcome = await InitialSetupJobHandler(users, channels).run(InitialSetupEvent())

        assert outcome.message.startswith("Synchronized 2 users.\n")
        assert "Channel sync finished" in outcome.message

    async def test_initial_setup_stops_when_user_sync_fails(
        self, users: UserDirectory, channels: ChannelDirectory, web_client: Any
    ) -> None:
        web_client.failing.add("users_list")
        web_client.channels = [{"id": "C01", "name": "general", "is_channel": True}]

        outcome = await InitialSetupJobHandler(users, channels).run(InitialSetupEvent())

        assert outcome.message.startswith("Error:")
        assert "Initial setup stopped" in outcome.message
        assert web_client.joined == []

    async def test_thread_repair(self, repairer: ThreadRepairer) -> None:
        outcome = await ThreadRepairJobHandler(repairer).run(ThreadRepairEvent())

        assert outcome.message.startswith("Thread repair finished: 0 tables checked")


class TestMissingConfigJobHandler:
    """Tests for MissingConfigJobHandler."""

    async def test_names_section_and_job(self) -> None:
        handler = MissingConfigJobHandler("export")

        outcome = await handler.run(BackfillEvent())

        assert "'export' section is missing" in outcome.message
        assert "backfill cannot run" in outcome.message
        assert outcome.reschedule is False


class TestJobHandlerRegistry:
    """Tests for JobHandlerRegistry class."""

    def test_register_and_get_handler(self) -> None:
        registry = JobHandlerRegistry()
        handler = MissingConfigJobHandler("slack")

        registry.register(EventType.BACKFILL, handler)
        result = registry.get_handler(EventType.BACKFILL)

        assert result is handler

    def test_get_handler_returns_none_for_unregistered(self) -> None:
        registry = JobHandlerRegistry()

        result = registry.get_handler(EventType.BACKFILL)

        assert result is None

    def test_register_overwrites_existing_handler(self) -> None:
        registry = JobHandlerRegistry()
        handler1 = MissingConfigJobHandler("slack")
        handler2 = MissingConfigJobHandler("export")

        registry.register(EventType.BULK_IMPORT, handler1)
        registry.register(EventType.BULK_IMPORT, handler2)
        result = registry.get_handler(EventType.BULK_IMPORT)

        assert result is handler2

    def test_items_in_registration_order(self) -> None:
        registry = JobHandlerRegistry()
        handler1 = MissingConfigJobHandler("slack")
        handler2 = MissingConfigJobHandler("export")

        registry.register(EventType.BACKFILL, handler1)
        registry.register(EventType.BULK_IMPORT, handler2)

        assert registry.items() == [
            (EventType.BACKFILL, handler1),
            (EventType.BULK_IMPORT, handler2),
        ]
