"""Tests for JobRunner."""

import asyncio

import pytest
from structlog.stdlib import BoundLogger

from slack_archiver.application.handlers import JobOutcome
from slack_archiver.application.handlers.job_handlers import (
    JobHandlerRegistry,
    MissingConfigJobHandler,
)
from slack_archiver.application.services.job_runner import JobRunner
from slack_archiver.domain.entities.event import (
    BackfillEvent,
    Event,
    EventType,
    ThreadRepairEvent,
)
from slack_archiver.infrastructure.event_queue import EventQueue


class ScriptedHandler:
    """Resumable handler returning queued outcomes in order."""

    def __init__(self, *outcomes: JobOutcome, progress: bool = False) -> None:
        self.outcomes = list(outcomes)
        self.progress = progress
        self.events: list[Event] = []

    async def run(self, event: Event) -> JobOutcome:
        self.events.append(event)
        return self.outcomes.pop(0)

    async def has_progress(self) -> bool:
        return self.progress

    async def reset(self) -> None:
        self.progress = False


class FailingHandler:
    async def run(self, event: Event) -> JobOutcome:
        raise RuntimeError("store unavailable")


@pytest.fixture
async def queue() -> EventQueue:
    return EventQueue()


@pytest.fixture
def registry() -> JobHandlerRegistry:
    return JobHandlerRegistry()


@pytest.fixture
def runner(
    registry: JobHandlerRegistry, queue: EventQueue, logger: BoundLogger
) -> JobRunner:
    return JobRunner(registry, queue, continuation_delay=0.05, logger=logger)


class TestProcess:
    """Tests for JobRunner.process."""

    async def test_returns_none_for_unregistered_type(
        self, runner: JobRunner
    ) -> None:
        assert await runner.process(BackfillEvent()) is None

    async def test_reschedule_enqueues_continuation(
        self,
        runner: JobRunner,
        registry: JobHandlerRegistry,
        queue: EventQueue,
    ) -> None:
        registry.register(
            EventType.BACKFILL,
            ScriptedHandler(JobOutcome(message="paused", reschedule=True)),
        )

        outcome = await runner.process(BackfillEvent())

        assert outcome is not None and outcome.reschedule
        assert queue.is_scheduled(EventType.BACKFILL.value)
        async with asyncio.timeout(1):
            continuation = await queue.dequeue()
        assert continuation.type is EventType.BACKFILL
        assert continuation.source == "continuation"

    async def test_finished_job_cancels_pending_continuation(
        self,
        runner: JobRunner,
        registry: JobHandlerRegistry,
        queue: EventQueue,
    ) -> None:
        registry.register(
            EventType.BACKFILL,
            ScriptedHandler(
                JobOutcome(message="paused", reschedule=True),
                JobOutcome(message="done"),
            ),
        )
        await runner.process(BackfillEvent())
        assert queue.is_scheduled(EventType.BACKFILL.value)

        await runner.process(BackfillEvent())

        assert not queue.is_scheduled(EventType.BACKFILL.value)
        assert queue.pending_count == 0

    async def test_records_last_result(
        self, runner: JobRunner, registry: JobHandlerRegistry
    ) -> None:
        registry.register(EventType.BACKFILL, MissingConfigJobHandler("slack"))

        await runner.process(BackfillEvent())

        assert "'slack' section is missing" in runner.last_results["backfill"]

    async def test_handler_error_is_recorded_and_raised(
        self, runner: JobRunner, registry: JobHandlerRegistry
    ) -> None:
        registry.register(EventType.BACKFILL, FailingHandler())

        with pytest.raises(RuntimeError, match="store unavailable"):
            await runner.process(BackfillEvent())

        assert runner.last_results["backfill"] == "Error: store unavailable"


class TestReset:
    """Tests for JobRunner.reset."""

    async def test_reset_clears_progress_and_continuation(
        self,
        runner: JobRunner,
        registry: JobHandlerRegistry,
        queue: EventQueue,
    ) -> None:
        handler = ScriptedHandler(
            JobOutcome(message="paused", reschedule=True), progress=True
        )
        registry.register(EventType.BACKFILL, handler)
        await runner.process(BackfillEvent())

        message = await runner.reset(EventType.BACKFILL)

        assert message.startswith("Progress of backfill cleared")
        assert handler.progress is False
        assert not queue.is_scheduled(EventType.BACKFILL.value)
        assert "backfill" not in runner.last_results

    async def test_reset_of_stateless_job(
        self, runner: JobRunner, registry: JobHandlerRegistry
    ) -> None:
        registry.register(EventType.USER_SYNC, MissingConfigJobHandler("slack"))

        message = await runner.reset(EventType.USER_SYNC)

        assert message == "user_sync keeps no progress to reset."


class TestResumePending:
    """Tests for JobRunner.resume_pending."""

    async def test_enqueues_jobs_with_progress(
        self,
        runner: JobRunner,
        registry: JobHandlerRegistry,
        queue: EventQueue,
    ) -> None:
        registry.register(EventType.BACKFILL, ScriptedHandler(progress=True))
        registry.register(EventType.BULK_IMPORT, ScriptedHandler(progress=False))
        registry.register(EventType.USER_SYNC, MissingConfigJobHandler("slack"))

        resumed = await runner.resume_pending()

        assert resumed == [EventType.BACKFILL]
        event = await queue.dequeue()
        assert event.type is EventType.BACKFILL
        assert event.source == "resume"


class TestScheduleRepair:
    """Tests for periodic thread repair."""

    async def test_disabled_by_default(
        self, runner: JobRunner, queue: EventQueue
    ) -> None:
        await runner.schedule_repair()

        assert not queue.is_scheduled(EventType.THREAD_REPAIR.value)

    async def test_finished_repair_schedules_next(
        self,
        registry: JobHandlerRegistry,
        queue: EventQueue,
        logger: BoundLogger,
    ) -> None:
        runner = JobRunner(
            registry, queue, continuation_delay=0.05, logger=logger, repair_interval=60
        )
        registry.register(
            EventType.THREAD_REPAIR, ScriptedHandler(JobOutcome(message="repaired"))
        )

        await runner.process(ThreadRepairEvent())

        assert queue.is_scheduled(EventType.THREAD_REPAIR.value)
        await queue.close()
