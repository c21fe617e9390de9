# zfs_sampler/collector/session.py - One capture session
"""
A capture session wires an event source to a fresh encoder and aggregator
and runs the poll/tick loop until its lifetime expires or the source ends.
"""

from enum import Enum
import time
from typing import Callable
import logging

from zfs_sampler.collector.aggregator import WindowedAggregator
from zfs_sampler.collector.event_handler import EventHandler
from zfs_sampler.collector.guid_encoder import GuidEncoder
from zfs_sampler.collector.scheduler import TickScheduler
from zfs_sampler.collector.tracer import EventSource


class SessionOutcome(Enum):
    EXPIRED = 'expired'        # max_intervals reached, last window published
    TERMINATED = 'terminated'  # capture stream ended, open window dropped
    FAILED = 'failed'          # exception out of the session, open window dropped


class CaptureSession:
    """
    Owns all per-session state: encoder cache, accumulators, scheduler.

    Events and ticks are handled in the same loop, so a flush never
    interleaves with a record.
    """

    def __init__(
        self,
        source: EventSource,
        publisher,
        interval: float = 60,
        max_intervals: int = 50,
        poll_timeout: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the session.

        Args:
            source: Event source, opened by run()
            publisher: Object with publish_window(samples)
            interval: Window length in seconds
            max_intervals: Windows before the session ends itself
            poll_timeout: Upper bound on a single source poll (seconds)
            clock: Monotonic clock
            wall_clock: Wall clock for sample timestamps
        """
        self.source = source
        self.publisher = publisher
        self.poll_timeout = poll_timeout

        self.encoder = GuidEncoder()
        self.aggregator = WindowedAggregator(self.encoder, interval)
        self.scheduler = TickScheduler(interval, max_intervals, clock=clock, wall_clock=wall_clock)
        self.event_handler = EventHandler()
        self.event_handler.register_callback(self.aggregator.record)

        self.windows_published = 0
        self.logger = logging.getLogger(__name__)

    def run(self) -> SessionOutcome:
        """
        Run until the scheduler expires or the source ends.

        Exceptions from the source propagate to the caller.

        Returns:
            SessionOutcome.EXPIRED or SessionOutcome.TERMINATED
        """
        self.source.register_event_handler('zio', self.event_handler.handle_zio_event)
        self.source.register_event_handler('operation', self.event_handler.handle_event)

        try:
            self.source.open()
            self.scheduler.start()
            while True:
                timeout = min(self.poll_timeout, self.scheduler.time_until_tick())
                if not self.source.poll(timeout):
                    self.logger.warning(
                        f"Capture stream ended; dropping open window "
                        f"({self.aggregator.pending_keys()} series)"
                    )
                    return SessionOutcome.TERMINATED

                if self.scheduler.poll():
                    self._flush()
                    if self.scheduler.expired:
                        self.logger.info(
                            f"Session reached {self.scheduler.max_intervals} intervals, ending"
                        )
                        return SessionOutcome.EXPIRED
        finally:
            self.source.close()

    def _flush(self):
        samples = self.aggregator.snapshot_and_reset(
            self.scheduler.timestamp(), window_length=self.scheduler.window_length,
        )
        self.publisher.publish_window(samples)
        self.windows_published += 1

    def get_stats(self) -> dict:
        return {
            'windows_published': self.windows_published,
            'handler': self.event_handler.get_stats(),
            'aggregator': self.aggregator.get_stats(),
            'encoder': self.encoder.get_stats(),
        }
