# zfs_sampler/collector/tracer.py - Capture sources and the BCC zio tracer
"""
Capture sources deliver operation events to registered handlers.

ZioTracer uses BCC (BPF Compiler Collection) to load an eBPF program that
times zfs_read/zfs_write calls and reports pool and dataset GUIDs.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Optional
import logging


class CaptureError(RuntimeError):
    """
    The capture facility could not start or stopped abnormally.
    """


class EventSource(ABC):
    """
    A bounded-lifetime stream of operation events.

    Handlers are registered per event type: 'zio' handlers receive raw perf
    records, 'operation' handlers receive OperationEvent objects.
    """

    def __init__(self):
        self.event_handlers: Dict[str, Callable] = {}

    def register_event_handler(self, event_type: str, handler: Callable):
        """
        Register a callback handler for an event type.

        Args:
            event_type: 'zio' or 'operation'
            handler: Callback function to process events
        """
        self.event_handlers[event_type] = handler

    def _dispatch(self, event_type: str, event):
        handler = self.event_handlers.get(event_type)
        if handler is not None:
            handler(event)

    @abstractmethod
    def open(self):
        """Start capturing. Raises CaptureError on failure."""

    @abstractmethod
    def poll(self, timeout: float) -> bool:
        """
        Deliver pending events, waiting at most `timeout` seconds.

        Returns:
            False once the stream has ended
        """

    @abstractmethod
    def close(self):
        """Stop capturing and release resources."""


class ZioTracer(EventSource):
    """
    Kernel tracer for ZFS read/write operations.

    Loads zio_tracer.c, attaches kprobes/kretprobes to the ZPL read and
    write entry points and polls the perf buffer.
    """

    # Operation to kernel function name mapping
    # Probe functions expect the OpenZFS 2.x (znode_t *, zfs_uio_t *) signature
    PROBE_FUNCS = {
        'read': ['zfs_read'],
        'write': ['zfs_write'],
    }

    def __init__(self, config: Dict):
        """
        Initialize the ZioTracer.

        Args:
            config: Configuration dictionary containing:
                - buffer_size: Perf buffer size in pages
                - include_dirs: ZFS kernel header directories
                - operations: Operations to trace (default: read, write)
        """
        super().__init__()
        self.config = config
        self.buffer_size = config.get('buffer_size', 64)
        self.include_dirs: List[str] = list(config.get('include_dirs', []))
        self.operations: List[str] = list(config.get('operations', ['read', 'write']))

        self.bpf = None
        self.attached_probes = []
        self.lost_events = 0

        self.logger = logging.getLogger(__name__)

        self.ebpf_dir = Path(__file__).parent.parent / 'ebpf'

    def load_ebpf_program(self, program_path: Path) -> str:
        """
        Load eBPF C program from file.

        Args:
            program_path: Path to the C program file

        Returns:
            Program source code as string
        """
        with open(program_path, 'r') as f:
            return f.read()

    def open(self):
        """
        Compile the eBPF program, attach probes and open the perf buffer.
        """
        try:
            from bcc import BPF
        except ImportError as e:
            raise CaptureError(f"BCC is not available: {e}") from e

        program = self.load_ebpf_program(self.ebpf_dir / 'zio_tracer.c')
        cflags = [f"-I{d}" for d in self.include_dirs]

        try:
            self.bpf = BPF(text=program, cflags=cflags)
            self.logger.info("eBPF program loaded successfully")
        except Exception as e:
            raise CaptureError(f"Failed to load eBPF program: {e}") from e

        self._attach_probes()

        self.bpf["events"].open_perf_buffer(
            self._handle_event,
            page_cnt=self.buffer_size,
            lost_cb=self._handle_lost,
        )

    def _attach_probes(self):
        """
        Attach kprobes/kretprobes for each traced operation.
        Tries each kernel function name variant in turn.
        """
        for op in self.operations:
            if op not in self.PROBE_FUNCS:
                self.logger.warning(f"Unknown operation: {op}, skipping")
                continue

            kernel_funcs = self.PROBE_FUNCS[op]
            attached = False

            for kernel_func in kernel_funcs:
                try:
                    self.bpf.attach_kprobe(event=kernel_func, fn_name=f"trace_{op}_entry")
                    self.bpf.attach_kretprobe(event=kernel_func, fn_name=f"trace_{op}_return")
                except Exception:
                    continue

                self.attached_probes.append({'op': op, 'kernel_func': kernel_func})
                self.logger.info(f"Attached probes to {op} (via {kernel_func})")
                attached = True
                break

            if not attached:
                self.logger.error(f"Failed to attach to {op}. Tried: {', '.join(kernel_funcs)}")

        if not self.attached_probes:
            raise CaptureError("Failed to attach to any ZFS entry point")

    def poll(self, timeout: float) -> bool:
        if self.bpf is None:
            raise CaptureError("Tracer not opened. Call open() first.")

        self.bpf.perf_buffer_poll(timeout=int(timeout * 1000))
        return True

    def _handle_event(self, cpu, data, size):
        """
        Internal handler for perf buffer events.

        Args:
            cpu: CPU number where event occurred
            data: Raw event data
            size: Size of event data
        """
        self._dispatch('zio', self.bpf["events"].event(data))

    def _handle_lost(self, count):
        self.lost_events += count
        self.logger.warning(f"Lost {count} zio events (perf buffer full)")

    def close(self):
        """
        Detach probes and release the BPF object.
        """
        if self.bpf is None:
            return

        for probe in self.attached_probes:
            try:
                self.bpf.detach_kprobe(event=probe['kernel_func'])
                self.bpf.detach_kretprobe(event=probe['kernel_func'])
                self.logger.debug(f"Detached probes from {probe['op']}")
            except Exception as e:
                self.logger.warning(f"Failed to detach {probe['op']}: {e}")

        self.bpf.cleanup()
        self.bpf = None
        self.attached_probes = []
        self.logger.info("Tracer stopped")

    def get_stats(self) -> Dict:
        """
        Get current statistics from eBPF maps.

        Returns:
            Dictionary containing current statistics
        """
        stats: Dict[str, Optional[int]] = {'lost_events': self.lost_events}

        if self.bpf:
            stats['inflight'] = len(self.bpf.get_table("inflight"))

        return stats
