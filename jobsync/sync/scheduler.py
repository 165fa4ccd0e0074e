"""Cancelable delayed callbacks.

The creation protocol arms its optimistic-close timer through a Scheduler so
tests can drive the race with a virtual clock instead of real sleeps.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from running. Safe to call more than once."""


class Scheduler(ABC):
    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` after ``delay`` seconds unless cancelled."""


class _LoopTimer(TimerHandle):
    def __init__(self, handle: asyncio.TimerHandle) -> None:
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()


class LoopScheduler(Scheduler):
    """Schedules on the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = asyncio.get_running_loop()
        return _LoopTimer(loop.call_later(delay, callback))
