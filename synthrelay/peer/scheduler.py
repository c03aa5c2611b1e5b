"""
Timer abstraction for the peer-side state machines.

The liveness verifier and the reconnection supervisor never sleep or read
the wall clock themselves; they ask a `Scheduler`, so tests can drive them
with a manual clock.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from abc import ABC, abstractmethod
from typing import Any, Callable

from loguru import logger

TimerCallback = Callable[[], Any]


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        pass


class Scheduler(ABC):
    """
    Clock and timers used by peer-side components.
    """

    @abstractmethod
    def now_ms(self) -> int:
        """Current time in milliseconds"""
        pass

    @abstractmethod
    def call_later(self, delay_seconds: float, callback: TimerCallback) -> TimerHandle:
        """Run `callback` once after `delay_seconds`"""
        pass

    @abstractmethod
    def call_every(self, interval_seconds: float, callback: TimerCallback) -> TimerHandle:
        """Run `callback` every `interval_seconds` until cancelled"""
        pass


class _AsyncioTimer(TimerHandle):
    def __init__(self) -> None:
        self.handle: asyncio.TimerHandle | None = None
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True
        if self.handle is not None:
            self.handle.cancel()


class AsyncioScheduler(Scheduler):
    """
    Scheduler backed by the running asyncio loop.

    Callbacks may be plain functions or coroutine functions; coroutines are
    run as tasks and their errors logged.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._timers: set[_AsyncioTimer] = set()
        self._tasks: set[asyncio.Task] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def call_later(self, delay_seconds: float, callback: TimerCallback) -> TimerHandle:
        timer = _AsyncioTimer()

        def fire() -> None:
            self._timers.discard(timer)
            if not timer.cancelled:
                self._run(callback)

        timer.handle = self.loop.call_later(delay_seconds, fire)
        self._timers.add(timer)
        return timer

    def call_every(self, interval_seconds: float, callback: TimerCallback) -> TimerHandle:
        timer = _AsyncioTimer()

        def fire() -> None:
            if timer.cancelled:
                self._timers.discard(timer)
                return
            timer.handle = self.loop.call_later(interval_seconds, fire)
            self._run(callback)

        timer.handle = self.loop.call_later(interval_seconds, fire)
        self._timers.add(timer)
        return timer

    def cancel_all(self) -> None:
        """Cancel every pending timer and running callback task"""
        for timer in list(self._timers):
            timer.cancel()
        self._timers.clear()

        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def _run(self, callback: TimerCallback) -> None:
        try:
            result = callback()
        except Exception as e:
            logger.error(f"Timer callback failed | Callback: {getattr(callback, '__qualname__', callback)} | Error: {str(e)}")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        if task.exception() is not None:
            logger.error(f"Timer task failed | Error: {str(task.exception())}")
