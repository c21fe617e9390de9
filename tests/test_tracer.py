# tests/test_tracer.py - Tests for tracer module
"""
Unit tests for the ZioTracer class. BCC is replaced with mocks.
"""

import sys
import types

import pytest
from unittest.mock import MagicMock, Mock, patch

from zfs_sampler.collector.tracer import CaptureError, ZioTracer


@pytest.fixture
def fake_bcc():
    """Install a fake `bcc` module exposing a mocked BPF class"""
    bpf = MagicMock()
    module = types.ModuleType('bcc')
    module.BPF = Mock(return_value=bpf)
    with patch.dict(sys.modules, {'bcc': module}):
        yield module, bpf


class TestZioTracer:
    """Test cases for ZioTracer"""

    def test_tracer_initialization(self):
        """Test tracer initialization with config"""
        config = {
            'buffer_size': 16,
            'include_dirs': ['/usr/src/zfs/include'],
        }

        tracer = ZioTracer(config)

        assert tracer.buffer_size == 16
        assert tracer.include_dirs == ['/usr/src/zfs/include']
        assert tracer.operations == ['read', 'write']
        assert tracer.bpf is None

    def test_program_ships_with_package(self):
        """The eBPF program defines the probe functions the tracer attaches"""
        tracer = ZioTracer({})
        program = tracer.load_ebpf_program(tracer.ebpf_dir / 'zio_tracer.c')

        for op in ('read', 'write'):
            assert f'trace_{op}_entry' in program
            assert f'trace_{op}_return' in program
        assert 'BPF_PERF_OUTPUT(events)' in program

    def test_open_attaches_probes(self, fake_bcc):
        """open() compiles with include dirs and attaches both operations"""
        module, bpf = fake_bcc
        tracer = ZioTracer({'buffer_size': 8, 'include_dirs': ['/zfs/include']})

        tracer.open()

        assert module.BPF.call_args.kwargs['cflags'] == ['-I/zfs/include']
        bpf.attach_kprobe.assert_any_call(event='zfs_read', fn_name='trace_read_entry')
        bpf.attach_kretprobe.assert_any_call(event='zfs_write', fn_name='trace_write_return')
        bpf.__getitem__.return_value.open_perf_buffer.assert_called_once()
        assert len(tracer.attached_probes) == 2

    def test_open_fails_without_probes(self, fake_bcc):
        """No attachable entry point is a capture error"""
        _, bpf = fake_bcc
        bpf.attach_kprobe.side_effect = Exception("could not find zfs_read")

        with pytest.raises(CaptureError):
            ZioTracer({}).open()

    def test_open_without_bcc(self):
        """Missing BCC is reported as a capture error"""
        with patch.dict(sys.modules, {'bcc': None}):
            with pytest.raises(CaptureError, match='BCC'):
                ZioTracer({}).open()

    def test_poll_before_open(self):
        """Polling an unopened tracer fails"""
        with pytest.raises(CaptureError):
            ZioTracer({}).poll(0.1)

    def test_poll_uses_milliseconds(self, fake_bcc):
        """Poll timeout is passed to BCC in milliseconds"""
        _, bpf = fake_bcc
        tracer = ZioTracer({})
        tracer.open()

        assert tracer.poll(0.25) is True
        bpf.perf_buffer_poll.assert_called_with(timeout=250)

    def test_perf_events_are_dispatched(self, fake_bcc):
        """Raw perf records go to the 'zio' handler"""
        _, bpf = fake_bcc
        raw = object()
        bpf.__getitem__.return_value.event.return_value = raw
        tracer = ZioTracer({})
        tracer.open()
        handler = Mock()
        tracer.register_event_handler('zio', handler)

        tracer._handle_event(0, b'', 0)

        handler.assert_called_once_with(raw)

    def test_close_detaches(self, fake_bcc):
        """close() detaches probes and releases the BPF object"""
        _, bpf = fake_bcc
        tracer = ZioTracer({})
        tracer.open()

        tracer.close()

        bpf.detach_kprobe.assert_any_call(event='zfs_read')
        bpf.cleanup.assert_called_once()
        assert tracer.bpf is None
        assert tracer.attached_probes == []

    def test_lost_events_counted(self):
        """Lost perf records are tallied"""
        tracer = ZioTracer({})
        tracer._handle_lost(3)
        tracer._handle_lost(2)

        assert tracer.get_stats() == {'lost_events': 5}
