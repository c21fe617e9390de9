# tests/test_collectd.py - Tests for the collectd publisher
"""
Unit tests for PUTVAL formatting, transports and CollectdPublisher.
"""

import io
import socket
import sys
import threading

import pytest

from zfs_sampler.collector.aggregator import MetricKey, MetricSample, Scope
from zfs_sampler.exporters.collectd import (
    CollectdPublisher,
    SocketTransport,
    StreamTransport,
    Transport,
    build_transport,
    format_putval,
    metric_path,
)


POOL = 'AAAAAAAAAAE='
DATASET = 'AAAAAAAAAAI='


def sample(metric='rbw', value=16384 / 60, scope=Scope.DATASET, timestamp=1_700_000_060.4):
    dataset = DATASET if scope is Scope.DATASET else None
    return MetricSample(MetricKey(scope, POOL, dataset, metric), value, timestamp)


class FlakyTransport(Transport):
    """Fails every send while `down` is set"""

    def __init__(self):
        self.down = False
        self.lines = []
        self.flushes = 0
        self.closes = 0

    def send(self, line):
        if self.down:
            raise ConnectionRefusedError("collectd not listening")
        self.lines.append(line)

    def flush(self):
        self.flushes += 1

    def close(self):
        self.closes += 1


class FakeCollectd:
    """
    Unix socket server answering every line the way collectd's unixsock
    plugin does. Lines listed in `reject` get a negative status.
    """

    def __init__(self, path, reject=()):
        self.path = path
        self.reject = set(reject)
        self.received = []
        self.server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self.server.bind(path)
        self.server.listen(1)
        self.server.settimeout(5.0)
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    def _serve(self):
        conn, _ = self.server.accept()
        reader = conn.makefile('r', encoding='utf-8', newline='\n')
        writer = conn.makefile('w', encoding='utf-8', newline='\n')
        with conn, reader, writer:
            for line in reader:
                self.received.append(line)
                if line in self.reject:
                    writer.write('-1 Parse error: Value list is invalid.\n')
                else:
                    writer.write('0 Success: 1 value has been dispatched.\n')
                writer.flush()

    def stop(self):
        self.thread.join(timeout=5.0)
        self.server.close()


@pytest.fixture
def collectd_server(tmp_path):
    servers = []

    def start(**kwargs):
        server = FakeCollectd(str(tmp_path / 'collectd.sock'), **kwargs)
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.server.close()


class TestFormatting:
    """Test cases for identifier and line formatting"""

    def test_metric_path_pool_scope(self):
        """Pool scope names only the pool"""
        assert metric_path(sample('lat', scope=Scope.POOL).key) == f'zpool-{POOL}/gauge-lat'

    def test_metric_path_dataset_scope(self):
        """Dataset scope names pool and dataset"""
        assert metric_path(sample('wiops').key) == f'zfs-{POOL}-{DATASET}/gauge-wiops'

    def test_format_putval(self):
        """PUTVAL line carries node, path, interval, epoch and value"""
        line = format_putval('host01', sample(), 60)

        assert line == (
            f'PUTVAL "host01/zfs-{POOL}-{DATASET}/gauge-rbw" '
            f'interval=60 1700000060:273.067\n'
        )


class TestTransports:
    """Test cases for StreamTransport and SocketTransport"""

    def test_stream_transport(self):
        """Lines are written verbatim to the stream"""
        stream = io.StringIO()
        transport = StreamTransport(stream)

        transport.send('PUTVAL "a/b/gauge-c" interval=1 1:1.000\n')
        transport.flush()

        assert stream.getvalue() == 'PUTVAL "a/b/gauge-c" interval=1 1:1.000\n'

    def test_socket_transport_delivers(self, collectd_server):
        """Lines arrive on the unix socket; flush closes the connection"""
        server = collectd_server()

        transport = SocketTransport(server.path, timeout=1.0)
        transport.send('line one\n')
        transport.send('line two\n')
        transport.flush()
        server.stop()

        assert server.received == ['line one\n', 'line two\n']
        assert transport.rejected == 0

    def test_socket_transport_reads_every_reply(self, collectd_server):
        """A large window is not stalled by unread status replies"""
        server = collectd_server()
        samples = [
            MetricSample(MetricKey(Scope.DATASET, POOL, f'ds{n:04d}', metric), 1.0, 1_700_000_060.0)
            for n in range(300)
            for metric in ('rlat', 'wlat', 'rbw', 'wbw', 'riops', 'wiops')
        ]
        publisher = CollectdPublisher(SocketTransport(server.path, timeout=1.0), 'host01', 60)

        sent = publisher.publish_window(samples)
        server.stop()

        assert sent == 1800
        assert len(server.received) == 1800
        assert publisher.windows_dropped == 0

    def test_socket_transport_counts_rejections(self, collectd_server):
        """A negative status is logged and the window carries on"""
        server = collectd_server(reject={'bad\n'})

        transport = SocketTransport(server.path, timeout=1.0)
        transport.send('bad\n')
        transport.send('good\n')
        transport.flush()
        server.stop()

        assert server.received == ['bad\n', 'good\n']
        assert transport.rejected == 1

    def test_socket_transport_silent_server_times_out(self, tmp_path):
        """A server that never answers surfaces as OSError"""
        path = str(tmp_path / 'collectd.sock')
        server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        server.bind(path)
        server.listen(1)

        try:
            transport = SocketTransport(path, timeout=0.2)
            with pytest.raises(OSError):
                transport.send('line one\n')
        finally:
            server.close()

    def test_socket_transport_missing_socket(self, tmp_path):
        """A missing socket surfaces as OSError"""
        transport = SocketTransport(str(tmp_path / 'absent.sock'))

        with pytest.raises(OSError):
            transport.send('x\n')

    def test_build_transport_override(self):
        """Override selects stdout"""
        transport = build_transport('/nonexistent', override='stdout')

        assert isinstance(transport, StreamTransport)
        assert transport.stream is sys.stdout

    def test_build_transport_socket(self):
        """Default is the collectd socket"""
        transport = build_transport('/var/run/collectd-unixsock', timeout=2.5)

        assert isinstance(transport, SocketTransport)
        assert transport.path == '/var/run/collectd-unixsock'
        assert transport.timeout == 2.5


class TestCollectdPublisher:
    """Test cases for CollectdPublisher"""

    def test_publish_window(self):
        """Every sample becomes one line, then the transport is flushed"""
        transport = FlakyTransport()
        publisher = CollectdPublisher(transport, 'host01', 60)

        sent = publisher.publish_window([sample('rbw'), sample('riops', 0.05)])

        assert sent == 2
        assert transport.lines[1] == (
            f'PUTVAL "host01/zfs-{POOL}-{DATASET}/gauge-riops" interval=60 1700000060:0.050\n'
        )
        assert transport.flushes == 1
        assert publisher.lines_sent == 2

    def test_transport_failure_drops_window_only(self):
        """A failed window is dropped and the next one is delivered"""
        transport = FlakyTransport()
        publisher = CollectdPublisher(transport, 'host01', 60)

        transport.down = True
        assert publisher.publish_window([sample('rbw'), sample('bw')]) == 0
        assert publisher.windows_dropped == 1
        assert transport.closes == 1

        transport.down = False
        assert publisher.publish_window([sample('rbw')]) == 1
        assert len(transport.lines) == 1
        assert publisher.get_stats() == {'lines_sent': 1, 'windows_dropped': 1}

    def test_empty_window(self):
        """An empty window sends nothing"""
        transport = FlakyTransport()
        publisher = CollectdPublisher(transport, 'host01', 60)

        assert publisher.publish_window([]) == 0
        assert transport.lines == []

    def test_publish_single_sample_raises(self):
        """publish() leaves transport errors to the caller"""
        transport = FlakyTransport()
        transport.down = True
        publisher = CollectdPublisher(transport, 'host01', 60)

        with pytest.raises(OSError):
            publisher.publish(sample())

    def test_fractional_interval_rejected(self):
        """collectd intervals are whole seconds"""
        with pytest.raises(ValueError):
            CollectdPublisher(FlakyTransport(), 'host01', 0.5)
