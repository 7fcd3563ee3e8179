"""In-memory cache with per-entry expiry."""

import time
from collections.abc import Callable
from typing import Generic, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Key/value cache whose entries expire after a fixed time-to-live.

    Expired entries are dropped lazily on access and on ``put``.

    Args:
        ttl_seconds: Lifetime of each entry.
        clock: Monotonic time source, replaceable in tests.
    """

    def __init__(
        self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, V]] = {}

    def __len__(self) -> int:
        self._evict()
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: V) -> None:
        self._evict()
        self._entries[key] = (self._clock() + self._ttl, value)

    def add_if_absent(self, key: str, value: V) -> bool:
        """Store ``value`` unless a live entry exists.

        Returns:
            True if the value was stored, False if the key was already present.
        """
        if self.get(key) is not None:
            return False
        self.put(key, value)
        return True

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self) -> None:
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
