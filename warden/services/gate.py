"""
Group Warden - Global Concurrency Gate
======================================

Counting semaphore with strict FIFO admission guarding every outbound
mutation (nickname and title changes) across all conversations.

DESIGN:
    With the default capacity of 1 every remote mutation in the process is
    serialized, which is the main protection against the platform's rate
    limit. release() hands the slot straight to the oldest waiter instead of
    freeing it, so a newcomer can never overtake a queued caller.

    There is no timeout: a holder that never releases starves everyone.

Usage:
    async with gate:
        await transport.set_title(thread_id, title)
"""

import asyncio
from collections import deque
from typing import Deque


class GlobalGate:
    """
    FIFO counting semaphore.

    Attributes:
        capacity: Maximum number of concurrent holders.
    """

    def __init__(self, capacity: int = 1) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._active = 0
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def active(self) -> int:
        return self._active

    @property
    def waiting(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def acquire(self) -> None:
        """Return once a slot is held, suspending in FIFO order if none is free."""
        if self._active < self.capacity and not self.waiting:
            self._active += 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The slot was handed over just before cancellation; pass it on.
                self.release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise
        # Slot was transferred by release(); _active already counts it.

    def release(self) -> None:
        """Hand the slot to the oldest live waiter, else free it."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        if self._active > 0:
            self._active -= 1

    async def __aenter__(self) -> "GlobalGate":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()


__all__ = ["GlobalGate"]
