"""Task scheduling: delayed and periodic callbacks with cancel-by-replacement."""

import asyncio
import heapq
import itertools
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

from common.logging_config import get_logger

logger = get_logger(__name__)

Callback = Callable[[], None]


class ScheduledTask:
    """Handle for a pending callback."""

    def __init__(self, when: float, callback: Callback, interval: Optional[float] = None):
        self.when = when
        self.callback = callback
        self.interval = interval
        self.cancelled = False
        self._handle: Optional[asyncio.TimerHandle] = None

    def cancel(self) -> None:
        self.cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class TaskScheduler(ABC):
    """Clock plus delayed/periodic callback submission."""

    @abstractmethod
    def now(self) -> float:
        """Current time in Unix seconds."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callback) -> ScheduledTask:
        """Run callback once after delay seconds."""

    @abstractmethod
    def call_every(self, interval: float, callback: Callback) -> ScheduledTask:
        """Run callback every interval seconds until cancelled."""


def _run_callback(task: ScheduledTask) -> None:
    try:
        task.callback()
    except Exception as e:
        logger.error(f"Scheduled callback failed: {e}", exc_info=True)


class AsyncioScheduler(TaskScheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None,
                 clock: Callable[[], float] = time.time):
        self._loop = loop
        self._clock = clock

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self._clock()

    def call_later(self, delay: float, callback: Callback) -> ScheduledTask:
        task = ScheduledTask(self.now() + delay, callback)

        def fire() -> None:
            task._handle = None
            if not task.cancelled:
                _run_callback(task)

        task._handle = self.loop.call_later(delay, fire)
        return task

    def call_every(self, interval: float, callback: Callback) -> ScheduledTask:
        task = ScheduledTask(self.now() + interval, callback, interval)

        def fire() -> None:
            if task.cancelled:
                return
            _run_callback(task)
            if not task.cancelled:
                task.when = self.now() + interval
                task._handle = self.loop.call_later(interval, fire)

        task._handle = self.loop.call_later(interval, fire)
        return task


class ManualScheduler(TaskScheduler):
    """
    Deterministic virtual-clock scheduler.

    Time only moves when advance() is called; due callbacks run in
    (time, submission order) order.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[Tuple[float, int, ScheduledTask]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def _push(self, task: ScheduledTask) -> None:
        heapq.heappush(self._queue, (task.when, next(self._seq), task))

    def call_later(self, delay: float, callback: Callback) -> ScheduledTask:
        task = ScheduledTask(self._now + delay, callback)
        self._push(task)
        return task

    def call_every(self, interval: float, callback: Callback) -> ScheduledTask:
        task = ScheduledTask(self._now + interval, callback, interval)
        self._push(task)
        return task

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward, running every callback that falls due.

        Args:
            seconds: How far to move the clock

        Returns:
            Number of callbacks run
        """
        target = self._now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, task = heapq.heappop(self._queue)
            if task.cancelled:
                continue
            self._now = when
            _run_callback(task)
            ran += 1
            if task.interval is not None and not task.cancelled:
                task.when = when + task.interval
                self._push(task)
        self._now = target
        return ran

    def pending(self) -> int:
        return sum(1 for _, _, task in self._queue if not task.cancelled)


class Debouncer:
    """
    Keyed single-slot timers: scheduling a key replaces its pending timer.
    """

    def __init__(self, scheduler: TaskScheduler):
        self.scheduler = scheduler
        self._pending: Dict[str, ScheduledTask] = {}

    def schedule(self, key: str, delay: float, callback: Callback) -> ScheduledTask:
        self.cancel(key)

        def fire() -> None:
            if self._pending.get(key) is task:
                del self._pending[key]
            callback()

        task = self.scheduler.call_later(delay, fire)
        self._pending[key] = task
        return task

    def cancel(self, key: str) -> bool:
        task = self._pending.pop(key, None)
        if task is None:
            return False
        task.cancel()
        return True

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def cancel_all(self) -> None:
        for key in list(self._pending):
            self.cancel(key)
