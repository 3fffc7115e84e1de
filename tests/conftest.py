"""
Shared fixtures: a controllable clock for store expiry and counting producers.
"""
import asyncio

import pytest


class FakeClock:
    """Stands in for the memory store's monotonic millisecond clock."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class CountingProducer:
    """Async producer that counts its calls and returns (or raises) a fixed outcome."""

    def __init__(self, value=None, delay: float = 0.0, error: Exception = None):
        self.value = value
        self.delay = delay
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.value


@pytest.fixture
def clock(monkeypatch):
    """Freeze store time; tests move it forward with clock.advance(ms)."""
    fake = FakeClock()
    monkeypatch.setattr("polycache.stores.memory._now_ms", fake)
    return fake


@pytest.fixture
def make_producer():
    """Factory for CountingProducer instances."""
    return CountingProducer
