"""Job handler implementations."""

from jinja2 import Template

from slack_archiver.application.handlers import JobHandler, JobOutcome
from slack_archiver.application.services.backfill import BackfillJob
from slack_archiver.application.services.bulk_import import BulkImportJob
from slack_archiver.application.services.channel_directory import ChannelDirectory
from slack_archiver.application.services.thread_repair import ThreadRepairer
from slack_archiver.application.services.user_directory import UserDirectory
from slack_archiver.domain.entities.event import Event, EventType

MISSING_CONFIG_TEMPLATE = Template(
    "Configuration error: the '{{ section }}' section is missing, "
    "so {{ job }} cannot run."
)
SETUP_ABORTED_TEMPLATE = Template(
    "Error: could not fetch the member list from Slack. Initial setup stopped."
)
SETUP_DONE_TEMPLATE = Template("Synchronized {{ users }} users.\n{{ channels }}")


class UserSyncJobHandler:
    """Handler for user sync jobs."""

    def __init__(self, users: UserDirectory) -> None:
        self._users = users

    async def run(self, event: Event) -> JobOutcome:
        return JobOutcome(message=await self._users.sync())


class ChannelSyncJobHandler:
    """Handler for channel sync jobs."""

    def __init__(self, channels: ChannelDirectory) -> None:
        self._channels = channels

    async def run(self, event: Event) -> JobOutcome:
        return JobOutcome(message=await self._channels.sync_and_join())


class InitialSetupJobHandler:
    """User sync followed by channel sync; stops if the user sync fails."""

    def __init__(self, users: UserDirectory, channels: ChannelDirectory) -> None:
        self._users = users
        self._channels = channels

    async def run(self, event: Event) -> JobOutcome:
        count = await self._users.refresh()
        if count is None:
            return JobOutcome(message=SETUP_ABORTED_TEMPLATE.render())
        channels = await self._channels.sync_and_join()
        return JobOutcome(
            message=SETUP_DONE_TEMPLATE.render(users=count, channels=channels)
        )


class ThreadRepairJobHandler:
    """Handler for thread repair jobs over every channel table."""

    def __init__(self, repairer: ThreadRepairer) -> None:
        self._repairer = repairer

    async def run(self, event: Event) -> JobOutcome:
        return JobOutcome(message=await self._repairer.repair_all())


class BackfillJobHandler:
    """Handler for the resumable API backfill."""

    def __init__(self, job: BackfillJob) -> None:
        self._job = job

    async def run(self, event: Event) -> JobOutcome:
        return await self._job.run_once()

    async def has_progress(self) -> bool:
        return await self._job.has_progress()

    async def reset(self) -> None:
        await self._job.reset()


class BulkImportJobHandler:
    """Handler for the resumable export import."""

    def __init__(self, job: BulkImportJob) -> None:
        self._job = job

    async def run(self, event: Event) -> JobOutcome:
        return await self._job.run_once()

    async def has_progress(self) -> bool:
        return await self._job.has_progress()

    async def reset(self) -> None:
        await self._job.reset()


class MissingConfigJobHandler:
    """Stands in for a job whose configuration section is absent."""

    def __init__(self, section: str) -> None:
        self._section = section

    async def run(self, event: Event) -> JobOutcome:
        return JobOutcome(
            message=MISSING_CONFIG_TEMPLATE.render(
                section=self._section, job=event.type.value
            )
        )


class JobHandlerRegistry:
    """Registry for job handlers."""

    def __init__(self) -> None:
        """Initialize the registry."""
        self._handlers: dict[EventType, JobHandler] = {}

    def register(self, event_type: EventType, handler: JobHandler) -> None:
        """Register a handler for an event type.

        Args:
            event_type: The event type to handle.
            handler: The handler to register.
        """
        self._handlers[event_type] = handler

    def get_handler(self, event_type: EventType) -> JobHandler | None:
        """Get handler for an event type.

        Args:
            event_type: The event type.

        Returns:
            The handler if registered, None otherwise.
        """
        return self._handlers.get(event_type)

    def items(self) -> list[tuple[EventType, JobHandler]]:
        return list(self._handlers.items())
