"""Timer scheduling used for stage timeouts and request backoff."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None:
        """Prevent the scheduled callback from running."""


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback after delay_s seconds on the client's event loop."""


class AsyncioScheduler:
    """Scheduler backed by the running asyncio loop.

    The loop is looked up on each call, so the scheduler can be created before
    the loop starts as long as timers are only armed from inside it.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_s, callback)
