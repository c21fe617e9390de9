# zfs_sampler/collector/supervisor.py - Capture session supervision
"""
Restarts capture sessions forever.

Each session gets a fresh source from the factory and fresh encoder and
aggregator state; nothing carries over between sessions.
"""

from enum import Enum
import time
from typing import Callable, List, Optional
import logging

from zfs_sampler.collector.session import CaptureSession, SessionOutcome
from zfs_sampler.collector.tracer import EventSource


class SupervisorState(Enum):
    STOPPED = 'stopped'
    STARTING = 'starting'
    RUNNING = 'running'
    FAILED = 'failed'


class SessionSupervisor:
    """
    Outer restart loop around CaptureSession.

    Both a failed and a normally finished session lead straight back to
    STARTING. There is no backoff and no retry limit.
    """

    def __init__(
        self,
        source_factory: Callable[[], EventSource],
        publisher,
        interval: float = 60,
        max_intervals: int = 50,
        poll_timeout: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the supervisor.

        Args:
            source_factory: Returns a new, unopened event source
            publisher: Object with publish_window(samples)
            interval: Window length in seconds
            max_intervals: Windows per session
            poll_timeout: Upper bound on a single source poll (seconds)
            clock: Monotonic clock
            wall_clock: Wall clock for sample timestamps
        """
        self.source_factory = source_factory
        self.publisher = publisher
        self.interval = interval
        self.max_intervals = max_intervals
        self.poll_timeout = poll_timeout
        self.clock = clock
        self.wall_clock = wall_clock

        self.state = SupervisorState.STOPPED
        self.current_session: Optional[CaptureSession] = None
        self.sessions_started = 0
        self.failures = 0
        self.outcomes: List[SessionOutcome] = []

        self.logger = logging.getLogger(__name__)

    @property
    def restarts(self) -> int:
        return max(0, self.sessions_started - 1)

    def run_once(self) -> SessionOutcome:
        """
        Start one session and run it to completion.

        Returns:
            How the session ended
        """
        self.state = SupervisorState.STARTING
        self.sessions_started += 1
        number = self.sessions_started

        try:
            session = CaptureSession(
                self.source_factory(),
                self.publisher,
                interval=self.interval,
                max_intervals=self.max_intervals,
                poll_timeout=self.poll_timeout,
                clock=self.clock,
                wall_clock=self.wall_clock,
            )
            self.current_session = session
            self.logger.info(f"Starting capture session {number}")
            self.state = SupervisorState.RUNNING
            outcome = session.run()
        except Exception as e:
            self.state = SupervisorState.FAILED
            self.failures += 1
            outcome = SessionOutcome.FAILED
            self.logger.warning(f"Capture session {number} failed: {e}; restarting")
        else:
            self.state = SupervisorState.STOPPED
            self.logger.info(f"Capture session {number} ended ({outcome.value})")

        self.outcomes.append(outcome)
        return outcome

    def run_forever(self, max_sessions: Optional[int] = None):
        """
        Run sessions back to back.

        Args:
            max_sessions: Stop after this many sessions (None: never stop)
        """
        try:
            while max_sessions is None or self.sessions_started < max_sessions:
                self.run_once()
        finally:
            self.state = SupervisorState.STOPPED

    def get_stats(self) -> dict:
        return {
            'state': self.state.value,
            'sessions_started': self.sessions_started,
            'restarts': self.restarts,
            'failures': self.failures,
        }
