"""Job handler module."""

from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from slack_archiver.domain.entities.event import Event


class JobOutcome(BaseModel):
    """Result of one job invocation.

    Attributes:
        message: Human-readable status for the operator.
        reschedule: Whether the job yielded with work left and wants a
            continuation.
    """

    message: str
    reschedule: bool = False


@runtime_checkable
class JobHandler(Protocol):
    """Protocol for handlers that run one invocation of a job."""

    async def run(self, event: Event) -> JobOutcome:
        """Run the job once.

        Args:
            event: The event that triggered the invocation.

        Returns:
            The outcome of this invocation.
        """
        ...


@runtime_checkable
class ResumableJobHandler(JobHandler, Protocol):
    """Job whose progress survives across invocations."""

    async def has_progress(self) -> bool:
        """Return whether persisted progress exists."""
        ...

    async def reset(self) -> None:
        """Discard persisted progress."""
        ...
