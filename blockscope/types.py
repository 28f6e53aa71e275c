from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Outcome(str, Enum):
    """Result of a single probe run."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    INDETERMINATE = "indeterminate"

    @property
    def is_definitive(self) -> bool:
        return self is not Outcome.INDETERMINATE

    @classmethod
    def from_value(cls, value: Any) -> "Outcome":
        """Coerce probe return values (bool, None, Outcome, strings) into an Outcome.

        Anything that is not recognisably a boolean verdict is indeterminate.
        """
        if isinstance(value, Outcome):
            return value
        if isinstance(value, bool):
            return cls.POSITIVE if value else cls.NEGATIVE
        if isinstance(value, str):
            text = value.strip().lower()
            if text in {"positive", "true", "blocked", "yes", "1"}:
                return cls.POSITIVE
            if text in {"negative", "false", "clean", "no", "0"}:
                return cls.NEGATIVE
        return cls.INDETERMINATE


class SessionState(str, Enum):
    IDLE = "idle"
    BYPASSED = "bypassed"
    DETECTING = "detecting"
    INCONCLUSIVE = "inconclusive"
    CLEAN = "clean"
    PENDING_VERIFICATION = "pending_verification"
    CONFIRMED_POSITIVE = "confirmed_positive"
    VERIFIED_POSITIVE = "verified_positive"
    RETRACTED = "retracted"


BLOCKING_STATES = frozenset({SessionState.CONFIRMED_POSITIVE, SessionState.VERIFIED_POSITIVE})


def is_blocking(state: SessionState) -> bool:
    """True only for the two states that permit the blocking UI action."""
    return state in BLOCKING_STATES


@dataclass(frozen=True)
class DetectionResult:
    """Snapshot of a posterior against a threshold. Derived, never stored on the posterior."""

    probability: float
    credible_interval: Tuple[float, float]
    threshold: float
    detected: bool

    @property
    def uncertainty(self) -> float:
        lo, hi = self.credible_interval
        return hi - lo

    @property
    def confidence(self) -> float:
        return 1.0 - self.uncertainty

    def to_dict(self) -> Dict[str, Any]:
        lo, hi = self.credible_interval
        return {
            "probability": self.probability,
            "ci_lo": lo,
            "ci_hi": hi,
            "uncertainty": self.uncertainty,
            "confidence": self.confidence,
            "threshold": self.threshold,
            "detected": self.detected,
        }


@dataclass
class ProbeRecord:
    name: str
    weight: float
    outcome: Outcome
    elapsed_ms: int = 0
    # Short description when the probe raised or timed out
    error: Optional[str] = None


@dataclass
class PassReport:
    """Diagnostics for one evidence-fusion pass (primary or verification)."""

    stage: str
    probes: List[ProbeRecord]
    run_count: int
    positives: int
    effective_threshold: float
    alpha: float
    beta: float
    result: Optional[DetectionResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "run_count": self.run_count,
            "positives": self.positives,
            "effective_threshold": self.effective_threshold,
            "alpha": self.alpha,
            "beta": self.beta,
            "probes": {r.name: r.outcome.value for r in self.probes},
            "result": self.result.to_dict() if self.result is not None else None,
        }


@dataclass
class SessionReport:
    """Terminal outcome of a DetectionSession."""

    state: SessionState
    reason: str
    primary: Optional[PassReport] = None
    verification: Optional[PassReport] = None
    adjustment: Dict[str, Any] = field(default_factory=dict)
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def blocking(self) -> bool:
        return is_blocking(self.state)
