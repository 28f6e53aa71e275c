"""
Pytest configuration and fixtures for detector tests.

Provides probe factories with scripted outcomes, a recording sleep, and a
fast configuration with delays disabled.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, List, Optional, Sequence

import pytest

from blockscope.browser import BrowserAdjustment
from blockscope.config import RunConfig
from blockscope.probes import Probe
from blockscope.types import Outcome

CATALOGUE_WEIGHTS = [
    ("baitElements", 1.0),
    ("controlComparison", 1.5),
    ("adsenseCheck", 1.0),
    ("heightCheck", 0.8),
    ("networkRequest", 0.8),
    ("scriptExecution", 1.2),
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep BLOCKSCOPE_* overrides from the developer shell out of tests."""
    for key in (
        "BLOCKSCOPE_THRESHOLD",
        "BLOCKSCOPE_CONFIDENCE",
        "BLOCKSCOPE_MIN_EVIDENCE",
        "BLOCKSCOPE_DISABLED",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def probe_factory() -> Callable[..., Probe]:
    """Factory for async probes returning a fixed value (or raising / stalling)."""

    def _make(
        name: str,
        outcome: Any = True,
        weight: float = 1.0,
        *,
        delay: float = 0.0,
        exc: Optional[BaseException] = None,
        timeout: float = 0.5,
        on_timeout: Outcome = Outcome.INDETERMINATE,
        calls: Optional[List[str]] = None,
    ) -> Probe:
        async def _run():
            if calls is not None:
                calls.append(name)
            if delay:
                await asyncio.sleep(delay)
            if exc is not None:
                raise exc
            return outcome

        return Probe(name=name, weight=weight, run=_run, timeout=timeout, on_timeout=on_timeout)

    return _make


@pytest.fixture
def catalogue_probes(probe_factory) -> Callable[..., List[Probe]]:
    """Six catalogue-named probes; ``outcomes`` aligns with CATALOGUE_WEIGHTS order."""

    def _make(outcomes: Sequence[Any], calls: Optional[List[str]] = None) -> List[Probe]:
        return [
            probe_factory(name, outcome, weight, calls=calls)
            for (name, weight), outcome in zip(CATALOGUE_WEIGHTS, outcomes)
        ]

    return _make


@pytest.fixture
def fast_config() -> Callable[..., RunConfig]:
    def _make(**overrides: Any) -> RunConfig:
        params = {"detection_delay": 0.0, "verification_delay": 0.0}
        params.update(overrides)
        return RunConfig(**params)

    return _make


@pytest.fixture
def neutral_adjustment() -> BrowserAdjustment:
    """Desktop Chrome: no disabled probes, no threshold change, no verification."""
    return BrowserAdjustment()


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
