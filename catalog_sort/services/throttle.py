"""Cooperative pacing for Admin API calls.

Work is dequeued strictly one item at a time with a fixed delay after each
item. This keeps the sorter under the API rate limit without reacting to it;
reacting to an actual 429 is the client's job (see shopify_client).

The sleep function is injectable so the schedule can be tested without
real time passing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")

SleepFn = Callable[[float], Awaitable[None]]


class FixedDelayScheduler:
    """Sequential queue with a fixed delay between dequeues."""

    def __init__(self, delay_s: float, sleep: SleepFn = asyncio.sleep):
        if delay_s < 0:
            raise ValueError("delay_s must be >= 0")
        self.delay_s = delay_s
        self._sleep = sleep

    @classmethod
    def from_ms(cls, delay_ms: int, sleep: SleepFn = asyncio.sleep) -> "FixedDelayScheduler":
        return cls(delay_ms / 1000.0, sleep=sleep)

    async def pace(self) -> None:
        """Wait the fixed delay (no-op when the delay is zero)."""
        if self.delay_s > 0:
            await self._sleep(self.delay_s)

    async def drain(
        self,
        items: Iterable[T],
        handler: Callable[[T], Awaitable[R]],
        should_stop: Callable[[], bool] | None = None,
    ) -> list[R]:
        """Run handler for each item in order, pacing after each one.

        should_stop is checked before every dequeue; once it returns True the
        remaining items are left unprocessed.
        """
        results: list[R] = []
        for item in items:
            if should_stop is not None and should_stop():
                break
            results.append(await handler(item))
            await self.pace()
        return results
