"""
ShardVault Scheduler

Clock abstraction used by the polling loop so waits can run on a virtual
clock in tests.
"""

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic time source with a cooperative wait."""

    def now(self) -> float:
        ...

    async def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    """Wall-clock implementation backed by the running event loop."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class VirtualClock:
    """
    Clock whose time only moves when a coroutine sleeps on it.

    Every sleep advances time instantly and yields to the event loop once,
    so polling logic runs without real delays.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self._now += seconds
        await asyncio.sleep(0)
