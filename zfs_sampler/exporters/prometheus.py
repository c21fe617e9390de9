# zfs_sampler/exporters/prometheus.py - Prometheus metrics exporter
"""
Exposes the latest window's samples as Prometheus gauges.
Provides HTTP endpoint for Prometheus to scrape.
"""

from prometheus_client import CollectorRegistry, Gauge, REGISTRY, generate_latest, start_http_server
from typing import Dict, Iterable, Optional, Set, Tuple
import logging

from zfs_sampler.collector.aggregator import MetricSample


OP_LABELS = {'r': 'read', 'w': 'write'}


class PrometheusPublisher:
    """
    Publishes window samples to Prometheus gauges.

    Series that had no events in the latest window are removed rather
    than left at a stale value or set to zero.
    """

    def __init__(self, port: int = 9101, registry: Optional[CollectorRegistry] = None):
        """
        Initialize the Prometheus publisher.

        Args:
            port: Port to expose metrics on
            registry: Registry to register gauges in (default: global registry)
        """
        self.port = port
        self.registry = registry if registry is not None else REGISTRY
        self.logger = logging.getLogger(__name__)

        labels = ['scope', 'pool', 'dataset', 'op']
        self.gauges: Dict[str, Gauge] = {
            'lat': Gauge(
                'zfs_sampler_latency_microseconds',
                'Mean operation latency over the last window',
                labels, registry=self.registry,
            ),
            'bw': Gauge(
                'zfs_sampler_bandwidth_bytes_per_second',
                'Bytes transferred per second over the last window',
                labels, registry=self.registry,
            ),
            'iops': Gauge(
                'zfs_sampler_operations_per_second',
                'Operations per second over the last window',
                labels, registry=self.registry,
            ),
        }

        self._published: Set[Tuple[str, Tuple[str, ...]]] = set()

    def start(self):
        """
        Start the Prometheus HTTP server.
        """
        try:
            start_http_server(self.port, registry=self.registry)
            self.logger.info(f"Prometheus metrics available at http://localhost:{self.port}/metrics")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")
            raise

    @staticmethod
    def _labels(sample: MetricSample) -> Tuple[str, ...]:
        key = sample.key
        op = OP_LABELS[key.metric[0]] if key.metric != key.family else 'all'
        return (key.scope.value, key.pool, key.dataset or '', op)

    def publish(self, sample: MetricSample):
        family = sample.key.family
        labels = self._labels(sample)
        self.gauges[family].labels(*labels).set(sample.value)
        self._published.add((family, labels))

    def publish_window(self, samples: Iterable[MetricSample]) -> int:
        """
        Replace gauge values with the samples of a closed window.

        Returns:
            Number of samples published
        """
        previous = self._published
        self._published = set()

        count = 0
        for sample in samples:
            self.publish(sample)
            count += 1

        for family, labels in previous - self._published:
            self.gauges[family].remove(*labels)

        return count

    def get_metrics_text(self) -> str:
        """
        Get current metrics in Prometheus text format.

        Returns:
            Metrics as text
        """
        return generate_latest(self.registry).decode('utf-8')
