"""Store-wide mutual exclusion with a bounded wait."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class LockTimeoutError(Exception):
    """Raised when the store lock cannot be acquired in time."""


class StoreLock:
    """Serializes read-check-then-write sequences against the store.

    One instance guards the whole store, not a single table.

    Args:
        timeout: Seconds to wait for the lock before giving up.
    """

    def __init__(self, timeout: float) -> None:
        self._timeout = timeout
        self._lock = asyncio.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        """Hold the lock for the duration of the block.

        The lock is released on every exit path, including exceptions.

        Raises:
            LockTimeoutError: If the lock was not acquired within the timeout.
        """
        try:
            async with asyncio.timeout(self._timeout):
                await self._lock.acquire()
        except TimeoutError as e:
            raise LockTimeoutError(
                f"Store lock not acquired within {self._timeout}s"
            ) from e
        try:
            yield
        finally:
            self._lock.release()
