"""
Beta-Binomial Evidence Accumulation

Conjugate Beta(alpha, beta) belief over "the client is suppressing ads".
Each probe contributes a weighted binary observation: Positive adds its weight
to alpha, Negative adds it to beta, Indeterminate adds nothing. Updates are
plain additions, so evidence can arrive in any order or in batches.

Credible intervals use a normal approximation once both parameters exceed 5;
below that the interval is widened with tuned multipliers because the normal
fit is poor in the low-count regime. Bounds are clamped to [0, 1].
"""
from __future__ import annotations

from typing import Iterable, Optional, Tuple
import math

import numpy as np

from .config import ConfigurationError
from .constants import (
    CREDIBLE_LEVEL_DEFAULT,
    NORMAL_APPROX_MIN_PARAM,
    PRIOR_ALPHA0_DEFAULT,
    PRIOR_BETA0_DEFAULT,
    SPARSE_MULTIPLIER_BY_LEVEL,
    THRESHOLD_DEFAULT,
    Z_BY_LEVEL,
)
from .types import DetectionResult, Outcome


class BetaPosterior:
    """Mutable Beta(alpha, beta) state. Mass only ever grows from the prior."""

    __slots__ = ("alpha0", "beta0", "alpha", "beta")

    def __init__(self, alpha0: float = PRIOR_ALPHA0_DEFAULT, beta0: float = PRIOR_BETA0_DEFAULT) -> None:
        alpha0 = float(alpha0)
        beta0 = float(beta0)
        if not (alpha0 > 0 and beta0 > 0):
            raise ConfigurationError(f"prior must be positive, got alpha0={alpha0}, beta0={beta0}")
        self.alpha0 = alpha0
        self.beta0 = beta0
        self.alpha = alpha0
        self.beta = beta0

    def update(self, outcome: Outcome, weight: float = 1.0) -> None:
        """Add weighted evidence. Indeterminate outcomes are a no-op."""
        w = float(weight)
        if not w > 0:
            raise ValueError(f"evidence weight must be > 0, got {weight}")
        if outcome is Outcome.POSITIVE:
            self.alpha += w
        elif outcome is Outcome.NEGATIVE:
            self.beta += w

    def update_many(self, evidence: Iterable[Tuple[Outcome, float]]) -> None:
        for outcome, weight in evidence:
            self.update(outcome, weight)

    def mean(self) -> float:
        return self.alpha / (self.alpha + self.beta)

    def mode(self) -> float:
        """Diagnostic only; degenerate (0.0) unless both parameters exceed 1."""
        if self.alpha > 1 and self.beta > 1:
            return (self.alpha - 1) / (self.alpha + self.beta - 2)
        return 0.0

    def variance(self) -> float:
        a, b = self.alpha, self.beta
        return (a * b) / ((a + b) ** 2 * (a + b + 1))

    def credible_interval(self, level: float = CREDIBLE_LEVEL_DEFAULT) -> Tuple[float, float]:
        if level not in Z_BY_LEVEL:
            raise ValueError(f"Unsupported credible level {level}; expected one of {sorted(Z_BY_LEVEL)}")
        mean = self.mean()
        std = math.sqrt(self.variance())
        if self.alpha > NORMAL_APPROX_MIN_PARAM and self.beta > NORMAL_APPROX_MIN_PARAM:
            half = Z_BY_LEVEL[level] * std
        else:
            half = SPARSE_MULTIPLIER_BY_LEVEL[level] * std
        lo, hi = np.clip([mean - half, mean + half], 0.0, 1.0)
        return float(lo), float(hi)

    def parameters(self) -> Tuple[float, float]:
        return self.alpha, self.beta

    def __repr__(self) -> str:
        return f"BetaPosterior(alpha={self.alpha:.4g}, beta={self.beta:.4g})"


class Detector:
    """Thresholded view over one BetaPosterior.

    A Detector is created fresh for every detection or verification attempt;
    the two stages never share a posterior.
    """

    def __init__(
        self,
        alpha0: float = PRIOR_ALPHA0_DEFAULT,
        beta0: float = PRIOR_BETA0_DEFAULT,
        threshold: float = THRESHOLD_DEFAULT,
        credible_level: float = CREDIBLE_LEVEL_DEFAULT,
    ) -> None:
        self.posterior = BetaPosterior(alpha0, beta0)
        self.credible_level = credible_level
        self._threshold = THRESHOLD_DEFAULT
        self.set_threshold(threshold)

    @property
    def threshold(self) -> float:
        return self._threshold

    def set_threshold(self, threshold: float) -> None:
        value = float(threshold)
        if not (0.0 <= value <= 1.0):
            raise ConfigurationError(f"threshold must be in [0, 1], got {threshold}")
        self._threshold = value

    def update(self, outcome: Outcome, weight: float = 1.0) -> None:
        self.posterior.update(outcome, weight)

    def mean(self) -> float:
        return self.posterior.mean()

    def mode(self) -> float:
        return self.posterior.mode()

    def variance(self) -> float:
        return self.posterior.variance()

    def credible_interval(self, level: Optional[float] = None) -> Tuple[float, float]:
        return self.posterior.credible_interval(self.credible_level if level is None else level)

    def result(self, threshold: Optional[float] = None) -> DetectionResult:
        if threshold is None:
            cutoff = self._threshold
        else:
            cutoff = float(threshold)
            if not (0.0 <= cutoff <= 1.0):
                raise ConfigurationError(f"threshold must be in [0, 1], got {threshold}")
        probability = self.mean()
        return DetectionResult(
            probability=probability,
            credible_interval=self.credible_interval(),
            threshold=cutoff,
            detected=probability > cutoff,
        )
