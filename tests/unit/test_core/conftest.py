"""Shared fixtures for core unit tests: fake clock, recording sleep and scripted probes."""

import asyncio
import random
from typing import List

import pytest


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Sleep replacement that records delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


class ScriptedProbe:
    """Heartbeat probe that follows a script of outcomes.

    Each entry is either None (success) or an exception instance to raise.
    After the script is exhausted the last entry repeats.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or [None]
        self.calls = 0
        self.gate: asyncio.Event = None  # type: ignore[assignment]

    async def __call__(self) -> None:
        index = min(self.calls, len(self.outcomes) - 1)
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes[index]
        if outcome is not None:
            raise outcome


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest.fixture
def seeded_rng():
    return random.Random(42)


@pytest.fixture
def make_probe():
    """Factory for scripted heartbeat probes."""
    return ScriptedProbe
