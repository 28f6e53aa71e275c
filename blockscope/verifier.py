from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from .config import RunConfig
from .orchestrator import PassVerdict, clamp_threshold, gather_evidence
from .posterior import Detector
from .probes import Probe
from .types import PassReport, SessionState

logger = logging.getLogger(__name__)


class Verifier:
    """Second, independent opinion before an irreversible positive verdict.

    Uses only the most reliable probes, its own prior and its own Detector,
    and a stricter cutoff than the primary pass.
    """

    def __init__(self, config: RunConfig, probes: Sequence[Probe], base_threshold: float) -> None:
        self.config = config
        self.probes = tuple(probes)
        self.base_threshold = float(base_threshold)

    @property
    def threshold(self) -> float:
        return clamp_threshold(self.base_threshold + self.config.verification_strictness_delta)

    def select_probes(self) -> List[Probe]:
        """Configured verification subset with its weights, else the top-N probes by weight."""
        cfg = self.config
        available = [p for p in self.probes if p.enabled]
        if cfg.verification_probes:
            chosen = [p.with_weight(cfg.verification_probes[p.name]) for p in available if p.name in cfg.verification_probes]
            if chosen:
                return chosen
            logger.info("no configured verification probes available; falling back to top-%d by weight", cfg.verification_probe_count)
        ranked = sorted(available, key=lambda p: (-float(p.weight), p.name))
        return ranked[: cfg.verification_probe_count]

    def new_detector(self) -> Detector:
        cfg = self.config
        return Detector(
            alpha0=cfg.verification_prior_alpha0,
            beta0=cfg.verification_prior_beta0,
            threshold=self.threshold,
            credible_level=cfg.credible_level,
        )

    async def run(self, timings: Optional[Dict[str, float]] = None) -> PassVerdict:
        detector = self.new_detector()
        try:
            report = await gather_evidence(self.select_probes(), detector, "verification", timings)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("verification pass failed; retracting")
            alpha, beta = detector.posterior.parameters()
            report = PassReport("verification", [], 0, 0, detector.threshold, alpha, beta)
            return PassVerdict(SessionState.RETRACTED, "internal_error", report)

        result = detector.result()
        report.result = result
        logger.info("verification result: p=%.3f threshold=%.3f", result.probability, result.threshold)
        if report.run_count == 0:
            logger.info("no definitive verification outcomes; retracting")
            return PassVerdict(SessionState.RETRACTED, "insufficient_evidence", report)
        if result.detected:
            return PassVerdict(SessionState.VERIFIED_POSITIVE, "verified", report)
        return PassVerdict(SessionState.RETRACTED, "verification_failed", report)
