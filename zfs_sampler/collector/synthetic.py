# zfs_sampler/collector/synthetic.py - Synthetic capture source
"""
Event source that replays scripted batches of operation events.

Used in place of the kernel tracer for tests and dry runs.
"""

import random
import time
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence
import logging

from zfs_sampler.collector.event_handler import OpKind, OperationEvent
from zfs_sampler.collector.tracer import CaptureError, EventSource


class SyntheticEventSource(EventSource):
    """
    Delivers one batch of events per poll.

    When the script runs out the source either keeps idling (endless),
    reports end of stream, or raises `fail_with` to simulate a crashed
    capture facility.
    """

    def __init__(
        self,
        script: Iterable[Sequence[OperationEvent]] = (),
        sleep: Callable[[float], None] = time.sleep,
        endless: bool = True,
        fail_with: Optional[Exception] = None,
    ):
        super().__init__()
        self._script: Optional[Iterator[Sequence[OperationEvent]]] = None
        self._source_script = script
        self.sleep = sleep
        self.endless = endless
        self.fail_with = fail_with

        self.opened = False
        self.closed = False
        self.delivered = 0

        self.logger = logging.getLogger(__name__)

    def open(self):
        if self.opened:
            raise CaptureError("Synthetic source cannot be reopened")
        self._script = iter(self._source_script)
        self.opened = True

    def poll(self, timeout: float) -> bool:
        if not self.opened:
            raise CaptureError("Source not opened. Call open() first.")

        batch = next(self._script, None)
        if batch is None:
            if self.fail_with is not None:
                raise self.fail_with
            if not self.endless:
                return False
            batch = ()

        for event in batch:
            self._dispatch('operation', event)
            self.delivered += 1

        self.sleep(timeout)
        return True

    def close(self):
        self.closed = True
        self.logger.debug(f"Synthetic source closed after {self.delivered} events")


def random_workload(
    pools: Dict[int, List[int]],
    events_per_batch: int = 20,
    seed: Optional[int] = None,
) -> Iterator[List[OperationEvent]]:
    """
    Endless batches of random reads and writes.

    Args:
        pools: Pool GUID -> dataset GUIDs in that pool
        events_per_batch: Events per poll
        seed: Random seed for reproducible runs
    """
    rng = random.Random(seed)
    pairs = [(pool, ds) for pool, datasets in pools.items() for ds in datasets]
    if not pairs:
        raise ValueError("random_workload needs at least one dataset")

    clock_ns = 0
    while True:
        batch = []
        for _ in range(events_per_batch):
            pool, ds = rng.choice(pairs)
            clock_ns += rng.randint(1_000, 100_000)
            batch.append(OperationEvent(
                pool_guid=pool,
                dataset_guid=ds,
                op=rng.choice((OpKind.READ, OpKind.WRITE)),
                bytes=rng.choice((512, 4096, 8192, 131072)),
                start_ns=clock_ns,
                end_ns=clock_ns + rng.randint(20_000, 2_000_000),
            ))
        yield batch
