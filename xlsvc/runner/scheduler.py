"""Timer scheduling for cooperative, single-threaded polling.

The poller never sleeps on its own; it asks a Scheduler to run its next
tick after a delay. AsyncioScheduler does that on the running event loop,
ManualScheduler keeps a virtual clock so time can be advanced by hand.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from xlsvc.utils.logging import get_logger

logger = get_logger("runner.scheduler")

TickCallback = Callable[[], Awaitable[None]]


class Timer(ABC):
    """Handle to a scheduled callback."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from starting. A running callback is not interrupted."""

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        """Whether cancel() was called."""


class Scheduler(ABC):
    """Clock plus delayed execution of async callbacks."""

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds on this scheduler's clock."""

    @abstractmethod
    def call_later(self, delay: float, callback: TickCallback) -> Timer:
        """Run `callback()` after `delay` seconds."""


class _AsyncioTimer(Timer):
    def __init__(self) -> None:
        self.handle: Optional[asyncio.TimerHandle] = None
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        if self.handle is not None:
            self.handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: TickCallback) -> Timer:
        timer = _AsyncioTimer()
        timer.handle = self.loop.call_later(
            max(0.0, delay), self._spawn, callback, timer
        )
        return timer

    def _spawn(self, callback: TickCallback, timer: _AsyncioTimer) -> None:
        if timer.cancelled:
            return
        task = self.loop.create_task(callback())
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "scheduled_callback_failed",
                error=str(task.exception()),
                error_type=type(task.exception()).__name__,
            )

    async def drain(self) -> None:
        """Wait for every callback task started so far (and any they start)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


@dataclass(order=True)
class _ManualTimer(Timer):
    due: float
    seq: int
    callback: TickCallback = field(compare=False)
    _cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """
    Deterministic scheduler with a virtual clock.

    Callbacks only run when the clock is driven with advance(),
    run_next() or run_until_idle(). Every requested delay is recorded in
    `delays` in request order.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._timers: list[_ManualTimer] = []
        self._seq = itertools.count()
        self.delays: list[float] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: TickCallback) -> Timer:
        self.delays.append(delay)
        timer = _ManualTimer(
            due=self._now + max(0.0, delay),
            seq=next(self._seq),
            callback=callback,
        )
        heapq.heappush(self._timers, timer)
        return timer

    def pending(self) -> int:
        """Number of scheduled, non-cancelled callbacks."""
        return sum(1 for timer in self._timers if not timer.cancelled)

    def _pop_next(self, until: Optional[float] = None) -> Optional[_ManualTimer]:
        while self._timers:
            timer = self._timers[0]
            if timer.cancelled:
                heapq.heappop(self._timers)
                continue
            if until is not None and timer.due > until:
                return None
            return heapq.heappop(self._timers)
        return None

    async def run_next(self) -> bool:
        """Jump to the next due callback and run it. False when none is pending."""
        timer = self._pop_next()
        if timer is None:
            return False
        self._now = max(self._now, timer.due)
        await timer.callback()
        return True

    async def advance(self, seconds: float) -> int:
        """Move the clock forward, running every callback that falls due."""
        target = self._now + seconds
        ran = 0
        while True:
            timer = self._pop_next(until=target)
            if timer is None:
                break
            self._now = max(self._now, timer.due)
            await timer.callback()
            ran += 1
        self._now = target
        return ran

    async def run_until_idle(self, max_steps: int = 10_000) -> int:
        """Run callbacks in due order until none remain."""
        ran = 0
        while ran < max_steps and await self.run_next():
            ran += 1
        return ran
