"""PropertyStore protocol."""

from typing import Protocol


class PropertyStore(Protocol):
    """Process-wide persisted key/value store."""

    async def get(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent."""
        ...

    async def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""
        ...

    async def delete(self, key: str) -> bool:
        """Delete a key.

        Returns:
            True if the key existed.
        """
        ...
