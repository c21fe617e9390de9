# zfs_sampler/collector/scheduler.py - Window tick scheduling
"""
Drives window boundaries at a fixed interval and bounds session lifetime.
"""

import time
import logging
from typing import Callable, Optional


class TickScheduler:
    """
    Fires a tick every `interval` seconds of monotonic time.

    After `max_intervals` ticks the scheduler reports itself expired and the
    session ends, which bounds encoder cache growth and restarts capture
    periodically even without failures.

    Sample timestamps are the session's start wall time plus elapsed
    monotonic seconds, so wall-clock jumps never reorder samples within a
    session.
    """

    def __init__(
        self,
        interval: float = 60,
        max_intervals: int = 50,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if max_intervals < 1:
            raise ValueError(f"max_intervals must be at least 1, got {max_intervals}")

        self.interval = interval
        self.max_intervals = max_intervals
        self.clock = clock
        self.wall_clock = wall_clock

        self.ticks = 0
        self._start: Optional[float] = None
        self._wall_start: Optional[float] = None
        self._next_tick: Optional[float] = None
        self.window_length: float = interval

        self.logger = logging.getLogger(__name__)

    def start(self):
        """
        Start the first window now.
        """
        self._start = self.clock()
        self._wall_start = self.wall_clock()
        self._next_tick = self._start + self.interval
        self.ticks = 0
        self.window_length = self.interval

    @property
    def started(self) -> bool:
        return self._start is not None

    @property
    def expired(self) -> bool:
        return self.ticks >= self.max_intervals

    def _require_started(self):
        if self._start is None:
            raise RuntimeError("Scheduler not started. Call start() first.")

    def elapsed(self) -> float:
        """Monotonic seconds since start()"""
        self._require_started()
        return self.clock() - self._start

    def timestamp(self) -> float:
        """Wall-clock seconds for the current instant"""
        self._require_started()
        return self._wall_start + self.elapsed()

    def time_until_tick(self) -> float:
        """Seconds until the next window boundary, never negative"""
        self._require_started()
        return max(0.0, self._next_tick - self.clock())

    def poll(self) -> bool:
        """
        Check for a window boundary.

        A poll that arrives after several boundaries fires once and skips
        ahead to the next future boundary; `window_length` then covers all
        of the merged intervals.

        Returns:
            True once per window, False before the next boundary
        """
        self._require_started()
        now = self.clock()
        if now < self._next_tick:
            return False

        missed = int((now - self._next_tick) // self.interval)
        if missed:
            self.logger.warning(f"Tick late by {missed} interval(s); merging into one window")

        self.window_length = (missed + 1) * self.interval
        self._next_tick += (missed + 1) * self.interval
        self.ticks += 1
        self.logger.debug(f"Tick {self.ticks}/{self.max_intervals}")
        return True
