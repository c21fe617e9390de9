# zfs_sampler/collector/event_handler.py - Event processing and handling
"""
Event handler for processing ZFS operation events.
Converts raw perf records into structured objects and fans them out.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Callable, Optional
import logging


class OpKind(Enum):
    """
    Operation kind. Values match ZFS's zio_type_t numbering.
    """
    READ = 1
    WRITE = 2

    @property
    def prefix(self) -> str:
        """Metric name prefix ('r' or 'w')"""
        return 'r' if self is OpKind.READ else 'w'


@dataclass(frozen=True)
class OperationEvent:
    """
    One completed read or write against a pool/dataset pair.
    Timestamps are kernel monotonic nanoseconds.
    """
    pool_guid: int
    dataset_guid: int
    op: OpKind
    bytes: int
    start_ns: int
    end_ns: int

    @property
    def elapsed_ns(self) -> int:
        """Elapsed time in nanoseconds"""
        return self.end_ns - self.start_ns

    @property
    def duration_us(self) -> float:
        """Elapsed time in microseconds"""
        return self.elapsed_ns / 1000.0


class EventHandler:
    """
    Handles incoming operation events and routes them to registered callbacks.

    A failing record or callback is logged and counted; it never stops the
    capture session.
    """

    def __init__(self):
        """
        Initialize the event handler.
        """
        self.event_callbacks: List[Callable] = []
        self.event_count = 0
        self.error_count = 0

        self.logger = logging.getLogger(__name__)

    def register_callback(self, callback: Callable):
        """
        Register a callback function to be called for each event.

        Args:
            callback: Function that takes an OperationEvent as parameter
        """
        self.event_callbacks.append(callback)

    def handle_zio_event(self, raw_event) -> Optional[OperationEvent]:
        """
        Process a raw zio record from the eBPF perf buffer.

        Args:
            raw_event: Raw event data from BCC

        Returns:
            Processed OperationEvent or None if processing failed
        """
        try:
            event = OperationEvent(
                pool_guid=raw_event.pool_guid,
                dataset_guid=raw_event.dataset_guid,
                op=OpKind(raw_event.op),
                bytes=raw_event.bytes,
                start_ns=raw_event.start_ns,
                end_ns=raw_event.end_ns,
            )
        except (AttributeError, ValueError) as e:
            self.logger.error(f"Error decoding zio event: {e}")
            self.error_count += 1
            return None

        return self.handle_event(event)

    def handle_event(self, event: OperationEvent) -> Optional[OperationEvent]:
        """
        Dispatch an already structured event to all callbacks.

        Args:
            event: OperationEvent

        Returns:
            The event, or None if a callback failed
        """
        try:
            for callback in self.event_callbacks:
                callback(event)
        except Exception as e:
            self.logger.error(f"Error processing event: {e}")
            self.error_count += 1
            return None

        self.event_count += 1
        return event

    def get_stats(self) -> Dict:
        """
        Get handler statistics.

        Returns:
            Dictionary with event processing statistics
        """
        return {
            'total_events': self.event_count,
            'errors': self.error_count,
            'callbacks_registered': len(self.event_callbacks)
        }
