"""
Shared fixtures for Verum tests.

Time is always injected: a ticking clock keeps payload timestamps and
block times strictly increasing, and a recording sleep makes retry and
segment delays instant.
"""

from typing import List

import pytest

from verum_index import IndexerConfig, InMemoryLedger, VerumIndexer
from verum_protocol import PayloadBuilder, PayloadValidator

# 2024-10-27, well after the protocol epoch
START_TIME = 1_730_000_000

ALICE = "kaspa:" + "a" * 61
BOB = "kaspa:" + "b" * 61
CAROL = "kaspa:" + "c" * 61


class TickingClock:
    """Returns a time one ``step`` later on every call."""

    def __init__(self, start: float = START_TIME, step: float = 1.0) -> None:
        self.now = start - step
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep that returns immediately and remembers each delay."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock():
    """Strictly increasing clock starting at START_TIME."""
    return TickingClock()


@pytest.fixture
def sleeps():
    """Instant sleep recording requested delays."""
    return RecordingSleep()


@pytest.fixture
def ledger(clock):
    """Empty in-memory ledger using the ticking clock for block times."""
    return InMemoryLedger(clock=clock)


@pytest.fixture
def builder(clock):
    """Payload builder stamping payloads with the ticking clock."""
    return PayloadBuilder(clock=clock)


@pytest.fixture
def validator(clock):
    """Validator sharing the ticking clock."""
    return PayloadValidator(clock=clock)


@pytest.fixture
def indexer(ledger):
    """Indexer over the in-memory ledger with default configuration."""
    return VerumIndexer(ledger, IndexerConfig())


@pytest.fixture
def alice():
    return ALICE


@pytest.fixture
def bob():
    return BOB


@pytest.fixture
def carol():
    return CAROL
