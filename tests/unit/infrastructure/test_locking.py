"""Tests for StoreLock."""

import asyncio

import pytest

from slack_archiver.infrastructure.locking import LockTimeoutError, StoreLock


class TestStoreLock:
    """Tests for StoreLock."""

    async def test_hold_and_release(self) -> None:
        lock = StoreLock(timeout=1)

        async with lock.hold():
            assert lock.locked

        assert not lock.locked

    async def test_released_on_exception(self) -> None:
        lock = StoreLock(timeout=1)

        with pytest.raises(RuntimeError):
            async with lock.hold():
                raise RuntimeError("write failed")

        assert not lock.locked

    async def test_timeout_while_held(self) -> None:
        lock = StoreLock(timeout=0.05)

        async with lock.hold():
            with pytest.raises(LockTimeoutError):
                async with lock.hold():
                    pass

        assert not lock.locked

    async def test_waiters_are_serialized(self) -> None:
        lock = StoreLock(timeout=1)
        order: list[str] = []

        async def worker(name: str) -> None:
            async with lock.hold():
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )
