# tests/conftest.py - Shared fixtures
"""
Shared fixtures for the sampler tests.
"""

import pytest


WALL_START = 1_700_000_000.0


class FakeClock:
    """Monotonic clock advanced by hand (or by a source's sleep)"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingPublisher:
    """Publisher double that keeps every window it receives"""

    def __init__(self):
        self.windows = []

    def publish_window(self, samples):
        self.windows.append(list(samples))
        return len(self.windows[-1])


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    return lambda: WALL_START


@pytest.fixture
def publisher():
    return RecordingPublisher()
