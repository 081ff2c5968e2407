"""Admission control for concurrent tracker checks."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

T = TypeVar("T")


class ConcurrencyGate:
    """Bounds how many awaitables run at once.

    Work waits for a free slot, runs, and gives the slot back whatever the
    outcome. There is no queue beyond the semaphore's waiters and no
    priority.
    """

    def __init__(self, max_concurrent: int = 10):
        """Initialize the gate.

        Args:
            max_concurrent: Maximum number of awaitables in flight

        """
        if max_concurrent < 1:
            msg = "max_concurrent must be at least 1"
            raise ValueError(msg)
        self.max_concurrent = max_concurrent
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        """Number of admitted awaitables that have not finished yet."""
        return self._in_flight

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Wait for a slot, then await ``awaitable`` inside it."""
        async with self.semaphore:
            self._in_flight += 1
            try:
                return await awaitable
            finally:
                self._in_flight -= 1
