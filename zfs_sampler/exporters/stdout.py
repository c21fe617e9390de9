# zfs_sampler/exporters/stdout.py - Console output exporter
"""
Prints each window's samples to stdout as a human-readable table.
"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, Optional, Tuple
from colorama import Fore, Style, init
import logging

from zfs_sampler.collector.aggregator import MetricSample
from zfs_sampler.utils.helpers import format_bytes


# Initialize colorama
init(autoreset=True)

COLUMNS = ('lat', 'rlat', 'wlat', 'bw', 'rbw', 'wbw', 'iops', 'riops', 'wiops')


class StdoutExporter:
    """
    Renders window samples with one row per pool or pool/dataset.

    Latency cells are colored by threshold.
    """

    def __init__(self, use_colors: bool = True, slow_threshold_us: float = 1000,
                 very_slow_threshold_us: float = 10000):
        """
        Initialize the stdout exporter.

        Args:
            use_colors: Whether to use colored output
            slow_threshold_us: Latency shown in yellow above this
            very_slow_threshold_us: Latency shown in red above this
        """
        self.use_colors = use_colors
        self.slow_threshold_us = slow_threshold_us
        self.very_slow_threshold_us = very_slow_threshold_us
        self.logger = logging.getLogger(__name__)

    def publish_window(self, samples: Iterable[MetricSample]) -> int:
        """
        Print all samples of a closed window.

        Returns:
            Number of samples printed
        """
        rows: Dict[Tuple[str, str, str], Dict[str, float]] = defaultdict(dict)
        timestamp: Optional[float] = None
        count = 0

        for sample in samples:
            key = sample.key
            rows[(key.scope.value, key.pool, key.dataset or '')][key.metric] = sample.value
            timestamp = sample.timestamp
            count += 1

        header = "Window"
        if timestamp is not None:
            header += f" @ {datetime.fromtimestamp(timestamp).strftime('%Y-%m-%d %H:%M:%S')}"
        print(f"\n{self._color(Fore.CYAN)}{header} ({count} samples){self._reset()}")

        if not rows:
            print("  (no operations)")
            return 0

        print(f"{'scope':<6} {'pool':<13} {'dataset':<13} "
              + " ".join(f"{c:>10}" for c in COLUMNS))
        print('-' * (34 + 11 * len(COLUMNS)))

        for (scope, pool, dataset), values in sorted(rows.items()):
            cells = [self._format_cell(column, values.get(column)) for column in COLUMNS]
            print(f"{scope:<6} {pool:<13} {dataset:<13} " + " ".join(cells))

        return count

    def _format_cell(self, column: str, value: Optional[float]) -> str:
        if value is None:
            return f"{'-':>10}"
        if column.endswith('lat'):
            return f"{self._get_color_for_latency(value)}{value:>8.0f}us{self._reset()}"
        if column.endswith('bw'):
            return f"{format_bytes(value) + '/s':>10}"
        return f"{value:>10.2f}"

    def _color(self, color: str) -> str:
        return color if self.use_colors else ""

    def _reset(self) -> str:
        return Style.RESET_ALL if self.use_colors else ""

    def _get_color_for_latency(self, latency_us: float) -> str:
        """
        Get color based on latency threshold.

        Args:
            latency_us: Latency in microseconds

        Returns:
            Color code
        """
        if not self.use_colors:
            return ""

        if latency_us > self.very_slow_threshold_us:
            return Fore.RED
        elif latency_us > self.slow_threshold_us:
            return Fore.YELLOW
        else:
            return Fore.GREEN
