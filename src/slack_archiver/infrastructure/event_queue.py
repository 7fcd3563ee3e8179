"""Job queue with per-type deduplication and delayed continuations."""

import asyncio

from slack_archiver.domain.entities.event import Event


class EventQueue:
    """In-memory job queue.

    Supports:
    - Deduplication based on identity_key (one pending job per type)
    - Delayed enqueue, used to schedule continuations of batch jobs
    - Cancellation of a scheduled continuation
    - Processing state tracking
    """

    def __init__(self) -> None:
        """Initialize the event queue."""
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._pending: dict[str, Event] = {}
        # Keyed by event.id so a running job does not block its own continuation
        self._processing: dict[str, Event] = {}
        self._delay_tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def pending_count(self) -> int:
        """Return the number of pending events."""
        return len(self._pending)

    @property
    def processing_count(self) -> int:
        """Return the number of events being processed."""
        return len(self._processing)

    def is_scheduled(self, key: str) -> bool:
        """Return whether a delayed event is waiting for ``key``."""
        return key in self._delay_tasks

    async def enqueue(self, event: Event, delay: float = 0) -> None:
        """Add an event to the queue.

        Any delayed event with the same identity key is cancelled first.

        Args:
            event: The event to enqueue.
            delay: Delay in seconds before the event is added to the queue.
                   Defaults to 0 (immediate enqueue).
        """
        key = event.get_identity_key()
        await self._cancel_delayed(key)

        if delay > 0:
            task = asyncio.create_task(self._delayed_enqueue(event, delay))
            self._delay_tasks[key] = task
        else:
            # A superseded event may still sit in the queue; dequeue skips it
            self._pending[key] = event
            await self._queue.put(event)

    async def cancel(self, key: str) -> bool:
        """Cancel the delayed and pending events for ``key``.

        Returns:
            True if anything was cancelled.
        """
        cancelled = await self._cancel_delayed(key)
        if self._pending.pop(key, None) is not None:
            cancelled = True
        return cancelled

    async def cancel_scheduled(self, key: str) -> bool:
        """Cancel only the delayed event for ``key``, leaving queued ones."""
        return await self._cancel_delayed(key)

    async def _cancel_delayed(self, key: str) -> bool:
        task = self._delay_tasks.pop(key, None)
        if task is None:
            return False
        if task is asyncio.current_task():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return True

    async def _delayed_enqueue(self, event: Event, delay: float) -> None:
        """Internal method to enqueue an event after a delay.

        Args:
            event: The event to enqueue.
            delay: Delay in seconds.
        """
        key = event.get_identity_key()
        try:
            await asyncio.sleep(delay)
            self._pending[key] = event
            await self._queue.put(event)
        finally:
            if self._delay_tasks.get(key) is asyncio.current_task():
                del self._delay_tasks[key]

    async def dequeue(self) -> Event:
        """Get the next event from the queue.

        Skips stale events (those that have been superseded by newer events
        with the same identity_key, or cancelled).

        Returns:
            The next event to process.
        """
        while True:
            event = await self._queue.get()
            key = event.get_identity_key()

            if key in self._pending and self._pending[key].id == event.id:
                del self._pending[key]
                self._processing[event.id] = event
                return event

    def mark_done(self, event: Event) -> None:
        """Mark an event as done processing.

        Args:
            event: The event that has been processed.
        """
        self._processing.pop(event.id, None)

    async def close(self) -> None:
        """Cancel all delayed events."""
        for key in list(self._delay_tasks):
            await self._cancel_delayed(key)
