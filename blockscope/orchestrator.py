"""
Primary detection pass.

Resolves the effective probe set for the session, fans the probes out
concurrently, fuses every definitive outcome into a fresh Detector and turns
the posterior into a primary verdict:

  - fewer than ``min_evidence_count`` definitive outcomes -> INCONCLUSIVE
  - detected with enough confidence -> PENDING_VERIFICATION or CONFIRMED_POSITIVE
  - detected with a wide credible interval -> INCONCLUSIVE
  - otherwise -> CLEAN

Nothing here raises to the caller; the worst case is INCONCLUSIVE.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from .browser import BrowserAdjustment
from .config import RunConfig
from .posterior import Detector
from .probes import Probe, run_probe
from .telemetry import timed
from .types import Outcome, PassReport, ProbeRecord, SessionState

logger = logging.getLogger(__name__)


@dataclass
class PassVerdict:
    state: SessionState
    reason: str
    report: PassReport


def clamp_threshold(value: float) -> float:
    return min(max(float(value), 0.0), 1.0)


def _ensure_unique(probes: Sequence[Probe]) -> None:
    seen: set[str] = set()
    for probe in probes:
        if probe.name in seen:
            raise ValueError(f"Duplicate probe name '{probe.name}'")
        seen.add(probe.name)


async def gather_evidence(
    probes: Iterable[Probe],
    detector: Detector,
    stage: str,
    timings: Optional[Dict[str, float]] = None,
) -> PassReport:
    """Fan out all probes, join on every one settling, fold outcomes into ``detector``.

    Each probe is bounded by its own timeout, so a hung probe only costs its
    own window. Evidence addition is commutative; completion order is irrelevant.
    """
    plan = list(probes)
    with timed(f"{stage}_probes", {"probes": len(plan)}, sink=timings):
        records: List[ProbeRecord] = list(await asyncio.gather(*(run_probe(p) for p in plan)))

    run_count = 0
    positives = 0
    for record in records:
        if not record.outcome.is_definitive:
            continue
        detector.update(record.outcome, record.weight)
        run_count += 1
        if record.outcome is Outcome.POSITIVE:
            positives += 1

    alpha, beta = detector.posterior.parameters()
    logger.info(
        "%s pass: %d/%d probes definitive, %d positive, alpha=%.3f beta=%.3f",
        stage,
        run_count,
        len(records),
        positives,
        alpha,
        beta,
    )
    return PassReport(
        stage=stage,
        probes=records,
        run_count=run_count,
        positives=positives,
        effective_threshold=detector.threshold,
        alpha=alpha,
        beta=beta,
    )


class Orchestrator:
    """Runs the primary pass for one session with an immutable config and adjustment."""

    def __init__(self, config: RunConfig, adjustment: BrowserAdjustment, probes: Sequence[Probe]) -> None:
        _ensure_unique(probes)
        self.config = config
        self.adjustment = adjustment
        self.probes = tuple(probes)

    @property
    def effective_threshold(self) -> float:
        return clamp_threshold(self.config.threshold + self.adjustment.threshold_delta)

    def effective_probes(self) -> List[Probe]:
        disabled = self.adjustment.disabled_probe_names
        return [p for p in self.probes if p.enabled and p.name not in disabled]

    def new_detector(self) -> Detector:
        cfg = self.config
        return Detector(
            alpha0=cfg.prior_alpha0,
            beta0=cfg.prior_beta0,
            threshold=self.effective_threshold,
            credible_level=cfg.credible_level,
        )

    async def run(self, timings: Optional[Dict[str, float]] = None) -> PassVerdict:
        detector = self.new_detector()
        try:
            report = await gather_evidence(self.effective_probes(), detector, "primary", timings)
            return self._decide(report, detector)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("primary detection pass failed; treating as inconclusive")
            alpha, beta = detector.posterior.parameters()
            report = PassReport(
                stage="primary",
                probes=[],
                run_count=0,
                positives=0,
                effective_threshold=detector.threshold,
                alpha=alpha,
                beta=beta,
            )
            return PassVerdict(SessionState.INCONCLUSIVE, "internal_error", report)

    def _decide(self, report: PassReport, detector: Detector) -> PassVerdict:
        cfg = self.config
        if report.run_count < cfg.min_evidence_count:
            logger.info("not enough definitive probes (%d/%d)", report.run_count, cfg.min_evidence_count)
            return PassVerdict(SessionState.INCONCLUSIVE, "insufficient_evidence", report)

        result = detector.result()
        report.result = result
        logger.info(
            "primary result: p=%.3f ci=[%.3f, %.3f] confidence=%.3f threshold=%.3f",
            result.probability,
            result.credible_interval[0],
            result.credible_interval[1],
            result.confidence,
            result.threshold,
        )

        if not result.detected:
            return PassVerdict(SessionState.CLEAN, "below_threshold", report)
        if result.confidence < cfg.confidence_requirement:
            return PassVerdict(SessionState.INCONCLUSIVE, "low_confidence", report)
        if cfg.gate_on_required_positives and report.positives < cfg.required_positives:
            return PassVerdict(SessionState.INCONCLUSIVE, "required_positives_not_met", report)
        if self.adjustment.verification_required:
            return PassVerdict(SessionState.PENDING_VERIFICATION, "verification_required", report)
        return PassVerdict(SessionState.CONFIRMED_POSITIVE, "detected", report)
