# zfs_sampler/exporters/collectd.py - collectd PUTVAL publisher
"""
Publishes samples to collectd as PUTVAL lines.

Lines go to a Transport: the unixsock plugin socket in production, or a
plain stream when debugging. Delivery is fire-and-forget.
"""

from abc import ABC, abstractmethod
import socket
import sys
from typing import IO, Iterable, Mapping, Optional
import logging

from zfs_sampler.collector.aggregator import MetricKey, MetricSample, Scope


def metric_path(key: MetricKey) -> str:
    """
    collectd plugin/type part of the identifier for a key.

    e.g. 'zfs-AAAAAAAAAAE=-AAAAAAAAAAI=/gauge-rbw'
    """
    instance = key.pool if key.scope is Scope.POOL else f"{key.pool}-{key.dataset}"
    return f"{key.scope.value}-{instance}/gauge-{key.metric}"


def format_putval(node: str, sample: MetricSample, interval: int) -> str:
    """
    Render one sample as a PUTVAL command line (newline included).
    """
    return (
        f'PUTVAL "{node}/{metric_path(sample.key)}" '
        f'interval={interval} {int(sample.timestamp)}:{sample.value:.3f}\n'
    )


class Transport(ABC):
    """
    Line sink for PUTVAL commands.
    """

    @abstractmethod
    def send(self, line: str):
        """Write one line. Raises OSError when the sink is unavailable."""

    def flush(self):
        """Called after each window."""

    def close(self):
        """Release resources."""


class SocketTransport(Transport):
    """
    Writes to collectd's unixsock plugin.

    Connects lazily once per window and disconnects at flush(). collectd
    answers every command with one status line; each reply is read before
    the next line is sent, otherwise unread replies back up and collectd
    stops reading. A negative status is logged and counted, the window
    goes on.
    """

    def __init__(self, path: str, timeout: float = 1.0):
        self.path = path
        self.timeout = timeout
        self.rejected = 0
        self._sock: Optional[socket.socket] = None
        self._replies: Optional[IO[str]] = None
        self.logger = logging.getLogger(__name__)

    def _connect(self) -> socket.socket:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        try:
            sock.connect(self.path)
        except OSError:
            sock.close()
            raise
        return sock

    def send(self, line: str):
        if self._sock is None:
            self._sock = self._connect()
            self._replies = self._sock.makefile('r', encoding='utf-8', newline='\n')
        try:
            self._sock.sendall(line.encode('utf-8'))
            reply = self._replies.readline()
        except OSError:
            self.close()
            raise

        if not reply:
            self.close()
            raise ConnectionResetError("collectd closed the connection")
        self._check_reply(reply.rstrip('\n'), line)

    def _check_reply(self, reply: str, line: str):
        status = reply.split(' ', 1)[0]
        try:
            failed = int(status) < 0
        except ValueError:
            failed = True
        if failed:
            self.rejected += 1
            self.logger.warning(f"collectd rejected {line.rstrip()!r}: {reply}")

    def flush(self):
        self.close()

    def close(self):
        if self._replies is not None:
            self._replies.close()
            self._replies = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None


class StreamTransport(Transport):
    """
    Writes lines to a text stream (stdout by default).
    """

    def __init__(self, stream: Optional[IO[str]] = None):
        self.stream = stream if stream is not None else sys.stdout

    def send(self, line: str):
        self.stream.write(line)

    def flush(self):
        self.stream.flush()


def build_transport(socket_path: str, timeout: float = 1.0, override: Optional[str] = None) -> Transport:
    """
    Select the transport from configuration.

    Args:
        socket_path: collectd unixsock path
        timeout: Socket timeout in seconds
        override: When set, echo lines to stdout instead of the socket
    """
    if override:
        logging.getLogger(__name__).info(f"Transport overridden ({override}); writing PUTVAL lines to stdout")
        return StreamTransport(sys.stdout)
    return SocketTransport(socket_path, timeout)


class CollectdPublisher:
    """
    Formats samples and ships them through a Transport.

    A transport error drops the rest of the window; the next window tries
    again from scratch.
    """

    def __init__(self, transport: Transport, node_name: str, interval: int):
        """
        Initialize the publisher.

        Args:
            transport: Line sink
            node_name: collectd host part of each identifier
            interval: Window length, sent as the PUTVAL interval option
        """
        if int(interval) != interval or interval < 1:
            raise ValueError(f"collectd interval must be a whole number of seconds, got {interval}")

        self.transport = transport
        self.node_name = node_name
        self.interval = int(interval)

        self.lines_sent = 0
        self.windows_dropped = 0
        self.logger = logging.getLogger(__name__)

    def format_sample(self, sample: MetricSample) -> str:
        return format_putval(self.node_name, sample, self.interval)

    def publish(self, sample: MetricSample):
        """
        Send a single sample. Raises OSError if the transport fails.
        """
        self.transport.send(self.format_sample(sample))
        self.lines_sent += 1

    def publish_window(self, samples: Iterable[MetricSample]) -> int:
        """
        Send all samples of a closed window.

        Returns:
            Number of lines delivered to the transport
        """
        sent = 0
        try:
            for sample in samples:
                self.publish(sample)
                sent += 1
            self.transport.flush()
        except OSError as e:
            self.windows_dropped += 1
            self.transport.close()
            self.logger.error(f"Transport unavailable, dropped window after {sent} lines: {e}")
            return sent

        self.logger.debug(f"Published {sent} samples")
        return sent

    def close(self):
        self.transport.close()

    def get_stats(self) -> Mapping[str, int]:
        return {
            'lines_sent': self.lines_sent,
            'windows_dropped': self.windows_dropped,
        }
