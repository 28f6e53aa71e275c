from __future__ import annotations

import asyncio
import threading
import time

import pytest

from blockscope.probes import PROBE_CATALOGUE, Probe, run_probe, shutdown_probe_pool
from blockscope.types import Outcome


@pytest.mark.parametrize(
    "value,expected",
    [
        (True, Outcome.POSITIVE),
        (False, Outcome.NEGATIVE),
        (None, Outcome.INDETERMINATE),
        (Outcome.NEGATIVE, Outcome.NEGATIVE),
        ("positive", Outcome.POSITIVE),
        ("Blocked", Outcome.POSITIVE),
        ("clean", Outcome.NEGATIVE),
        ("maybe", Outcome.INDETERMINATE),
        (1, Outcome.INDETERMINATE),
    ],
)
def test_outcome_from_value(value, expected):
    assert Outcome.from_value(value) is expected


def test_async_probe_boolean_result(probe_factory):
    record = asyncio.run(run_probe(probe_factory("bait", True, 1.5)))
    assert record.outcome is Outcome.POSITIVE
    assert record.weight == 1.5
    assert record.error is None


def test_sync_probe_runs_off_loop():
    probe = Probe(name="sync", weight=1.0, run=lambda: False)
    record = asyncio.run(run_probe(probe))
    assert record.outcome is Outcome.NEGATIVE


def test_probe_error_becomes_indeterminate(probe_factory):
    record = asyncio.run(run_probe(probe_factory("boom", True, exc=RuntimeError("dom gone"))))
    assert record.outcome is Outcome.INDETERMINATE
    assert "RuntimeError" in record.error


def test_probe_timeout_uses_default_outcome(probe_factory):
    slow = probe_factory("slow", False, delay=5.0, timeout=0.05)
    start = time.perf_counter()
    record = asyncio.run(run_probe(slow))
    assert time.perf_counter() - start < 2.0
    assert record.outcome is Outcome.INDETERMINATE
    assert record.error.startswith("timeout")

    pixel = probe_factory("pixel", False, delay=5.0, timeout=0.05, on_timeout=Outcome.POSITIVE)
    assert asyncio.run(run_probe(pixel)).outcome is Outcome.POSITIVE


def test_probe_validation():
    with pytest.raises(ValueError):
        Probe(name="", weight=1.0, run=lambda: True)
    with pytest.raises(ValueError):
        Probe(name="w", weight=0.0, run=lambda: True)
    with pytest.raises(TypeError):
        Probe(name="r", weight=1.0, run="not callable")
    with pytest.raises(ValueError):
        Probe(name="t", weight=1.0, run=lambda: True, timeout=0)


def test_with_weight_keeps_identity():
    probe = Probe(name="bait", weight=1.0, run=lambda: True, timeout=0.1)
    heavier = probe.with_weight(1.2)
    assert heavier.name == "bait"
    assert heavier.weight == 1.2
    assert heavier.timeout == 0.1
    assert probe.weight == 1.0


def test_catalogue_weights():
    weights = {name: spec.weight for name, spec in PROBE_CATALOGUE.items()}
    assert weights == {
        "baitElements": 1.0,
        "controlComparison": 1.5,
        "adsenseCheck": 1.0,
        "heightCheck": 0.8,
        "networkRequest": 0.8,
        "scriptExecution": 1.2,
    }
    assert PROBE_CATALOGUE["networkRequest"].on_timeout is Outcome.POSITIVE
    assert all(0.1 <= spec.timeout <= 0.75 for spec in PROBE_CATALOGUE.values())


def test_stuck_sync_check_does_not_hold_up_loop_shutdown():
    release = threading.Event()

    def _stuck():
        release.wait(3.0)
        return True

    probe = Probe(name="stuck", weight=1.0, run=_stuck, timeout=0.05)
    start = time.perf_counter()
    try:
        record = asyncio.run(run_probe(probe))
        elapsed = time.perf_counter() - start
    finally:
        release.set()
    assert record.outcome is Outcome.INDETERMINATE
    assert record.error.startswith("timeout")
    assert elapsed < 1.0


def test_worker_pool_can_be_rebuilt():
    shutdown_probe_pool()
    probe = Probe(name="sync", weight=1.0, run=lambda: True)
    assert asyncio.run(run_probe(probe)).outcome is Outcome.POSITIVE
