# zfs_sampler/collector/aggregator.py - Windowed aggregation
"""
Aggregates operation events into tumbling windows and produces
normalized rate samples at each window boundary.
"""

from dataclasses import dataclass
from collections import defaultdict
from enum import Enum
from typing import Dict, List, Optional
import threading
import logging

from zfs_sampler.collector.event_handler import OperationEvent
from zfs_sampler.collector.guid_encoder import GuidEncoder


# Capture timestamps are nanoseconds; latency is published in microseconds
LATENCY_DIVISOR = 1000.0

FAMILIES = ('lat', 'bw', 'iops')
METRIC_NAMES = tuple(
    prefix + family for family in FAMILIES for prefix in ('', 'r', 'w')
)


class Scope(Enum):
    """
    Aggregation granularity. Values are the tags used in metric paths.
    """
    POOL = 'zpool'
    DATASET = 'zfs'


@dataclass(frozen=True)
class MetricKey:
    """
    Identifies one published series.
    """
    scope: Scope
    pool: str
    dataset: Optional[str]
    metric: str

    @property
    def family(self) -> str:
        """Metric family without the op prefix"""
        name = self.metric
        return name[1:] if name[1:] in FAMILIES else name

    @property
    def sort_key(self) -> tuple:
        return (self.scope.value, self.pool, self.dataset or '', self.metric)


@dataclass(frozen=True)
class MetricSample:
    """
    A normalized value for one key, ready for publishing.
    """
    key: MetricKey
    value: float
    timestamp: float


class Accumulator:
    """
    Running count and total for one series.
    """

    __slots__ = ('count', 'total')

    def __init__(self):
        self.count = 0
        self.total = 0

    def add(self, value):
        self.count += 1
        self.total += value

    @property
    def mean(self) -> float:
        return self.total / self.count


class WindowedAggregator:
    """
    Accumulates per-key statistics for the current window.

    Every event updates, for both scopes and each family, one op-specific
    series and the combined series. snapshot_and_reset() swaps the whole
    table out under the lock, so an event lands in exactly one window.
    """

    def __init__(self, encoder: GuidEncoder, interval: float):
        """
        Initialize the aggregator.

        Args:
            encoder: Session GUID encoder
            interval: Window length in seconds; rates are divided by it
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")

        self.encoder = encoder
        self.interval = interval

        self._accumulators: Dict[MetricKey, Accumulator] = defaultdict(Accumulator)
        self._lock = threading.Lock()

        self.total_events = 0
        self.windows_closed = 0
        self.logger = logging.getLogger(__name__)

    def record(self, event: OperationEvent):
        """
        Add an event to the current window.

        Args:
            event: OperationEvent
        """
        prefix = event.op.prefix
        values = (
            ('lat', event.elapsed_ns),
            ('bw', event.bytes),
            ('iops', 1),
        )

        with self._lock:
            pool = self.encoder.encode(event.pool_guid)
            dataset = self.encoder.encode(event.dataset_guid)
            for scope, ds in ((Scope.POOL, None), (Scope.DATASET, dataset)):
                for family, value in values:
                    self._accumulators[MetricKey(scope, pool, ds, family)].add(value)
                    self._accumulators[MetricKey(scope, pool, ds, prefix + family)].add(value)
            self.total_events += 1

    def snapshot_and_reset(self, timestamp: float, window_length: Optional[float] = None) -> List[MetricSample]:
        """
        Close the current window.

        Args:
            timestamp: Wall-clock time to stamp the samples with
            window_length: Seconds the window actually covered, when a late
                tick merged several intervals (default: interval)

        Returns:
            Samples for every key that saw events, ordered by key
        """
        seconds = window_length if window_length else self.interval

        with self._lock:
            closed, self._accumulators = self._accumulators, defaultdict(Accumulator)
            self.windows_closed += 1

        samples = [
            MetricSample(key, self._normalize(key, acc, seconds), timestamp)
            for key, acc in closed.items()
            if acc.count
        ]
        samples.sort(key=lambda s: s.key.sort_key)

        self.logger.debug(f"Window {self.windows_closed} closed with {len(samples)} samples")
        return samples

    def pending_keys(self) -> int:
        """Number of series with data in the open window"""
        with self._lock:
            return len(self._accumulators)

    def _normalize(self, key: MetricKey, acc: Accumulator, seconds: float) -> float:
        family = key.family
        if family == 'lat':
            return acc.mean / LATENCY_DIVISOR
        if family == 'bw':
            return acc.total / seconds
        return acc.count / seconds

    def get_stats(self) -> Dict:
        """
        Get aggregator statistics.

        Returns:
            Dictionary with event and window counters
        """
        return {
            'total_events': self.total_events,
            'windows_closed': self.windows_closed,
            'pending_keys': self.pending_keys(),
        }
