"""Job runner driving batch jobs and their continuations."""

from jinja2 import Template
from structlog.stdlib import BoundLogger

from slack_archiver.application.handlers import JobOutcome, ResumableJobHandler
from slack_archiver.application.handlers.job_handlers import JobHandlerRegistry
from slack_archiver.domain.entities.event import Event, EventType, create_event
from slack_archiver.infrastructure.event_queue import EventQueue

RESET_TEMPLATE = Template("Progress of {{ job }} cleared and pending continuation cancelled.")
NOT_RESETTABLE_TEMPLATE = Template("{{ job }} keeps no progress to reset.")


class JobRunner:
    """Runs one job invocation per event.

    A job that yields with work left is re-enqueued after the continuation
    delay; a finished job has its pending continuation cancelled. Only one
    continuation per job type exists at a time because the queue keys
    events by type.

    Args:
        registry: Job handlers by event type.
        queue: Job queue shared with the HTTP layer.
        continuation_delay: Seconds before a continuation runs.
        logger: Logger instance.
        repair_interval: Seconds between periodic thread repairs; 0 disables.
    """

    def __init__(
        self,
        registry: JobHandlerRegistry,
        queue: EventQueue,
        continuation_delay: float,
        logger: BoundLogger,
        repair_interval: float = 0,
    ) -> None:
        self._registry = registry
        self._queue = queue
        self._continuation_delay = continuation_delay
        self._logger = logger
        self._repair_interval = repair_interval
        self._last_results: dict[str, str] = {}

    @property
    def registry(self) -> JobHandlerRegistry:
        return self._registry

    @property
    def last_results(self) -> dict[str, str]:
        """Latest status message per job type."""
        return dict(self._last_results)

    async def process(self, event: Event) -> JobOutcome | None:
        """Run one invocation of the job named by the event.

        Args:
            event: The event to process.

        Returns:
            The outcome, or None if no handler is registered.

        Raises:
            Exception: If the handler fails outside its own unit isolation.
        """
        self._logger.info(
            "Processing job",
            event_id=event.id,
            event_type=event.type.value,
            source=event.source,
        )

        handler = self._registry.get_handler(event.type)
        if handler is None:
            self._logger.warning(
                "No handler found for event type",
                event_type=event.type.value,
            )
            return None

        try:
            outcome = await handler.run(event)
        except Exception as e:
            self._last_results[event.type.value] = f"Error: {e}"
            self._logger.error(
                "Error processing job",
                event_id=event.id,
                error=str(e),
                exc_info=True,
            )
            raise

        self._last_results[event.type.value] = outcome.message
        key = event.get_identity_key()
        if outcome.reschedule:
            await self._queue.enqueue(
                create_event(event.type, source="continuation"),
                delay=self._continuation_delay,
            )
        else:
            await self._queue.cancel_scheduled(key)
            if event.type is EventType.THREAD_REPAIR:
                await self.schedule_repair()

        self._logger.info(
            "Job invocation completed",
            event_id=event.id,
            event_type=event.type.value,
            rescheduled=outcome.reschedule,
            result=outcome.message,
        )
        return outcome

    async def reset(self, event_type: EventType) -> str:
        """Discard a job's progress and cancel its pending continuation."""
        handler = self._registry.get_handler(event_type)
        if not isinstance(handler, ResumableJobHandler):
            return NOT_RESETTABLE_TEMPLATE.render(job=event_type.value)
        await handler.reset()
        await self._queue.cancel(event_type.value)
        self._last_results.pop(event_type.value, None)
        return RESET_TEMPLATE.render(job=event_type.value)

    async def resume_pending(self) -> list[EventType]:
        """Enqueue every resumable job that has persisted progress."""
        resumed = []
        for event_type, handler in self._registry.items():
            if isinstance(handler, ResumableJobHandler) and await handler.has_progress():
                await self._queue.enqueue(create_event(event_type, source="resume"))
                resumed.append(event_type)
        if resumed:
            self._logger.info(
                "Resuming interrupted jobs", jobs=[t.value for t in resumed]
            )
        return resumed

    async def schedule_repair(self) -> None:
        """Schedule the next periodic thread repair, if enabled."""
        if self._repair_interval > 0:
            await self._queue.enqueue(
                create_event(EventType.THREAD_REPAIR, source="schedule"),
                delay=self._repair_interval,
            )
