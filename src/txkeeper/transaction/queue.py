from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SerializationQueue:
    """Admit one critical section at a time, in arrival order.

    The slot is handed directly from the releasing holder to the oldest
    waiter, so a caller arriving later can never overtake one that is
    already queued. A failing body releases the slot like any other.
    """

    def __init__(self) -> None:
        self._waiters: Deque[asyncio.Future] = deque()
        self._locked = False

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self) -> None:
        if not self._locked and not self._waiters:
            self._locked = True
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug(
            "Queued for serialization slot (%d ahead)", self.waiting - 1
        )
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Handed the slot just before being cancelled
                self.release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._locked = False

    async def run(self, body: Callable[[], Awaitable[T]]) -> T:
        await self.acquire()
        try:
            return await body()
        finally:
            self.release()
