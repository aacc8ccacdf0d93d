"""Injectable periodic scheduling.

Every actively tracked vehicle owns one repeating timer and the health
monitor owns another. :class:`AsyncioScheduler` runs them on the event
loop; :class:`ManualScheduler` lets tests advance time explicitly.

Cancelling a timer only stops future firings. A callback that is already
running is left alone; callers detect and discard its late result.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

_logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[None]]
Interval = float | Callable[[], float]


def _interval_seconds(interval: Interval) -> float:
    value = interval() if callable(interval) else interval
    return max(float(value), 0.0)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...

    @property
    def cancelled(self) -> bool:
        ...


class Scheduler(Protocol):
    def call_every(self, interval: Interval, callback: TickCallback) -> TimerHandle:
        """Run ``callback`` every ``interval`` seconds until cancelled.

        A callable ``interval`` is re-evaluated each time the timer re-arms.
        """
        ...


class _AsyncioTimer:
    def __init__(self, loop: asyncio.AbstractEventLoop, interval: Interval, callback: TickCallback) -> None:
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._cancelled = False
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def arm(self) -> None:
        if self._cancelled:
            return
        self._handle = self._loop.call_later(_interval_seconds(self._interval), self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        task = self._loop.create_task(self._run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self.arm()

    async def _run(self) -> None:
        try:
            await self._callback()
        except Exception:
            _logger.exception("Scheduled callback failed")

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class AsyncioScheduler:
    """Scheduler backed by ``loop.call_later``.

    Must be used from inside a running event loop.
    """

    def call_every(self, interval: Interval, callback: TickCallback) -> _AsyncioTimer:
        timer = _AsyncioTimer(asyncio.get_running_loop(), interval, callback)
        timer.arm()
        return timer


class ManualClock:
    """Settable clock usable wherever a ``Callable[[], datetime]`` is expected."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> datetime:
        self._now += timedelta(seconds=seconds)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value


class _ManualTimer:
    def __init__(self, scheduler: ManualScheduler, interval: Interval, callback: TickCallback) -> None:
        self._scheduler = scheduler
        self.interval = interval
        self.callback = callback
        self.due = scheduler.elapsed + _interval_seconds(interval)
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class ManualScheduler:
    """Deterministic scheduler driven by :meth:`advance`.

    When a :class:`ManualClock` is supplied it is moved forward in step
    with the scheduler so timestamps seen by callbacks match firing times.
    """

    def __init__(self, clock: ManualClock | None = None) -> None:
        self._clock = clock
        self._timers: list[_ManualTimer] = []
        self.elapsed = 0.0

    def call_every(self, interval: Interval, callback: TickCallback) -> _ManualTimer:
        timer = _ManualTimer(self, interval, callback)
        self._timers.append(timer)
        return timer

    @property
    def active_timers(self) -> list[_ManualTimer]:
        return [t for t in self._timers if not t.cancelled]

    def _move_to(self, target: float) -> None:
        if self._clock is not None and target > self.elapsed:
            self._clock.advance(target - self.elapsed)
        self.elapsed = max(self.elapsed, target)

    async def advance(self, seconds: float) -> int:
        """Advance time by ``seconds``, awaiting every callback that falls due.

        Returns the number of callbacks run.
        """
        target = self.elapsed + seconds
        fired = 0
        while True:
            due = [t for t in self.active_timers if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self._move_to(timer.due)
            timer.due = self.elapsed + max(_interval_seconds(timer.interval), 1e-9)
            await timer.callback()
            fired += 1
        self._move_to(target)
        return fired
