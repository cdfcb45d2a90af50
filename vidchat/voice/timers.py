from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol

from vidchat.telemetry.logging import get_logger

LOGGER = get_logger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Schedules callbacks on the running asyncio loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        LOGGER.debug("timer.scheduled", delay=delay, callback=getattr(callback, "__name__", repr(callback)))
        return loop.call_later(max(delay, 0.0), callback)


def cancel(handle: TimerHandle | None) -> None:
    if handle is not None:
        handle.cancel()


__all__ = ["TimerHandle", "Scheduler", "LoopScheduler", "cancel"]
