from __future__ import annotations

import asyncio
import time

import pytest

import blockscope.orchestrator as orchestrator_mod
from blockscope.browser import BrowserAdjustment
from blockscope.orchestrator import Orchestrator, clamp_threshold
from blockscope.probes import Probe
from blockscope.types import Outcome, SessionState


def _run(orch: Orchestrator):
    return asyncio.run(orch.run())


def test_mixed_evidence_below_threshold_is_clean(catalogue_probes, fast_config, neutral_adjustment):
    # networkRequest negative, everything else positive: Beta(6.5, 3.8)
    probes = catalogue_probes([True, True, True, True, False, True])
    verdict = _run(Orchestrator(fast_config(), neutral_adjustment, probes))
    assert verdict.state is SessionState.CLEAN
    assert verdict.reason == "below_threshold"
    report = verdict.report
    assert report.alpha == pytest.approx(6.5)
    assert report.beta == pytest.approx(3.8)
    assert report.result.probability == pytest.approx(0.631, abs=1e-3)
    assert report.result.detected is False
    assert report.run_count == 6
    assert report.positives == 5


def test_insufficient_evidence_when_probes_fail(probe_factory, fast_config, neutral_adjustment):
    probes = [probe_factory("bait", True, 1.0)]
    probes += [probe_factory(f"broken{i}", True, exc=RuntimeError("boom")) for i in range(5)]
    verdict = _run(Orchestrator(fast_config(), neutral_adjustment, probes))
    assert verdict.state is SessionState.INCONCLUSIVE
    assert verdict.reason == "insufficient_evidence"
    assert verdict.report.run_count == 1
    assert verdict.report.result is None


def test_all_indeterminate_never_detects(catalogue_probes, fast_config, neutral_adjustment):
    probes = catalogue_probes([None] * 6)
    verdict = _run(Orchestrator(fast_config(min_evidence_count=1), neutral_adjustment, probes))
    assert verdict.state is SessionState.INCONCLUSIVE
    assert verdict.report.alpha == pytest.approx(1.0)
    assert verdict.report.beta == pytest.approx(3.0)


def test_positive_without_verification_confirms(catalogue_probes, fast_config, neutral_adjustment):
    cfg = fast_config(threshold=0.6, confidence_requirement=0.0)
    verdict = _run(Orchestrator(cfg, neutral_adjustment, catalogue_probes([True] * 6)))
    assert verdict.state is SessionState.CONFIRMED_POSITIVE
    assert verdict.reason == "detected"
    assert verdict.report.alpha == pytest.approx(7.3)
    assert verdict.report.result.probability == pytest.approx(7.3 / 10.3)


def test_positive_with_verification_is_pending(catalogue_probes, fast_config):
    cfg = fast_config(threshold=0.6, confidence_requirement=0.0)
    adjustment = BrowserAdjustment(verification_required=True)
    verdict = _run(Orchestrator(cfg, adjustment, catalogue_probes([True] * 6)))
    assert verdict.state is SessionState.PENDING_VERIFICATION
    assert verdict.reason == "verification_required"


def test_wide_interval_is_inconclusive(catalogue_probes, fast_config, neutral_adjustment):
    cfg = fast_config(threshold=0.6, confidence_requirement=0.9)
    verdict = _run(Orchestrator(cfg, neutral_adjustment, catalogue_probes([True] * 6)))
    assert verdict.state is SessionState.INCONCLUSIVE
    assert verdict.reason == "low_confidence"
    assert verdict.report.result.detected is True
    assert verdict.report.result.confidence < 0.9


def test_required_positives_gate_is_opt_in(probe_factory, fast_config, neutral_adjustment):
    probes = [probe_factory("heavy", True, 5.0), probe_factory("a", None), probe_factory("b", None)]
    base = dict(threshold=0.6, confidence_requirement=0.0, min_evidence_count=1, required_positives=2)

    gated = _run(Orchestrator(fast_config(gate_on_required_positives=True, **base), neutral_adjustment, probes))
    assert gated.state is SessionState.INCONCLUSIVE
    assert gated.reason == "required_positives_not_met"

    ungated = _run(Orchestrator(fast_config(**base), neutral_adjustment, probes))
    assert ungated.state is SessionState.CONFIRMED_POSITIVE


def test_disabled_probes_are_not_invoked(catalogue_probes, probe_factory, fast_config):
    calls = []
    probes = catalogue_probes([True] * 6, calls=calls)
    switched_off = probe_factory("extra", True, calls=calls)
    probes.append(Probe(name="extra", weight=1.0, run=switched_off.run, enabled=False))
    adjustment = BrowserAdjustment(disabled_probe_names=frozenset({"networkRequest"}))
    orch = Orchestrator(fast_config(), adjustment, probes)
    assert [p.name for p in orch.effective_probes()] == [
        "baitElements",
        "controlComparison",
        "adsenseCheck",
        "heightCheck",
        "scriptExecution",
    ]
    verdict = _run(orch)
    assert "networkRequest" not in calls
    assert "extra" not in calls
    assert set(verdict.report.to_dict()["probes"]) == set(calls)


def test_threshold_delta_applied_and_clamped(fast_config):
    shifted = Orchestrator(fast_config(), BrowserAdjustment(threshold_delta=0.10), [])
    assert shifted.effective_threshold == pytest.approx(0.85)
    assert shifted.new_detector().threshold == pytest.approx(0.85)

    clamped = Orchestrator(fast_config(threshold=0.98), BrowserAdjustment(threshold_delta=0.10), [])
    assert clamped.effective_threshold == 1.0
    assert clamp_threshold(-0.2) == 0.0


def test_hung_probe_costs_only_its_own_window(probe_factory, fast_config, neutral_adjustment):
    probes = [
        probe_factory("hang", True, delay=5.0, timeout=0.05),
        probe_factory("a", False),
        probe_factory("b", False),
        probe_factory("c", False),
    ]
    start = time.perf_counter()
    verdict = _run(Orchestrator(fast_config(), neutral_adjustment, probes))
    assert time.perf_counter() - start < 2.0
    assert verdict.state is SessionState.CLEAN
    assert verdict.report.run_count == 3
    outcomes = verdict.report.to_dict()["probes"]
    assert outcomes["hang"] == Outcome.INDETERMINATE.value


def test_timeout_default_outcome_counts_as_evidence(probe_factory, fast_config, neutral_adjustment):
    probes = [
        probe_factory("pixel", False, 0.8, delay=5.0, timeout=0.05, on_timeout=Outcome.POSITIVE),
        probe_factory("a", False),
        probe_factory("b", False),
    ]
    verdict = _run(Orchestrator(fast_config(), neutral_adjustment, probes))
    assert verdict.report.run_count == 3
    assert verdict.report.positives == 1
    assert verdict.report.alpha == pytest.approx(1.8)


def test_duplicate_probe_names_rejected(probe_factory, fast_config, neutral_adjustment):
    with pytest.raises(ValueError):
        Orchestrator(fast_config(), neutral_adjustment, [probe_factory("x"), probe_factory("x")])


def test_internal_failure_is_inconclusive(monkeypatch, catalogue_probes, fast_config, neutral_adjustment):
    async def _explode(*args, **kwargs):
        raise RuntimeError("fan-out broke")

    monkeypatch.setattr(orchestrator_mod, "gather_evidence", _explode)
    verdict = _run(Orchestrator(fast_config(), neutral_adjustment, catalogue_probes([True] * 6)))
    assert verdict.state is SessionState.INCONCLUSIVE
    assert verdict.reason == "internal_error"
    assert verdict.report.run_count == 0


def test_timings_recorded(catalogue_probes, fast_config, neutral_adjustment):
    timings = {}
    asyncio.run(Orchestrator(fast_config(), neutral_adjustment, catalogue_probes([False] * 6)).run(timings))
    assert "primary_probes" in timings
