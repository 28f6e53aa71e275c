from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..types import PassReport, SessionReport, SessionState, is_blocking
from ..verdicts import verdict_label


class ResultBlockV1(BaseModel):
    """Posterior summary for one pass."""

    model_config = ConfigDict(extra="forbid")

    probability: float = Field(..., ge=0.0, le=1.0)
    ci_lo: float = Field(..., ge=0.0, le=1.0)
    ci_hi: float = Field(..., ge=0.0, le=1.0)
    uncertainty: float = Field(..., ge=0.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    threshold: float = Field(..., ge=0.0, le=1.0)
    detected: bool
    label: str = ""

    @model_validator(mode="after")
    def _check_ci_bounds(self) -> "ResultBlockV1":
        if self.ci_lo > self.ci_hi:
            raise ValueError("ci_lo must be <= ci_hi")
        if not (self.ci_lo <= self.probability <= self.ci_hi):
            raise ValueError("probability must lie within [ci_lo, ci_hi]")
        if not self.label:
            object.__setattr__(self, "label", verdict_label(self.probability))
        return self


class PassBlockV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    stage: str
    run_count: int = Field(..., ge=0)
    positives: int = Field(..., ge=0)
    effective_threshold: float = Field(..., ge=0.0, le=1.0)
    alpha: float = Field(..., gt=0.0)
    beta: float = Field(..., gt=0.0)
    probes: Dict[str, str] = Field(default_factory=dict)
    result: Optional[ResultBlockV1] = None

    @model_validator(mode="after")
    def _check_counts(self) -> "PassBlockV1":
        if self.positives > self.run_count:
            raise ValueError("positives cannot exceed run_count")
        return self


class SessionReportV1(BaseModel):
    """Serialized terminal state of a detection session."""

    model_config = ConfigDict(extra="forbid")

    state: SessionState
    reason: str
    blocking: bool
    primary: Optional[PassBlockV1] = None
    verification: Optional[PassBlockV1] = None
    adjustment: Dict[str, Any] = Field(default_factory=dict)
    timings: Dict[str, float] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_blocking(self) -> "SessionReportV1":
        if self.blocking != is_blocking(self.state):
            raise ValueError("blocking flag inconsistent with state")
        if self.verification is not None and self.state not in (
            SessionState.VERIFIED_POSITIVE,
            SessionState.RETRACTED,
        ):
            raise ValueError("verification block only allowed after a verification pass")
        return self


def _pass_block(report: Optional[PassReport]) -> Optional[PassBlockV1]:
    if report is None:
        return None
    return PassBlockV1(**report.to_dict())


def report_to_dict(report: SessionReport) -> Dict[str, Any]:
    model = SessionReportV1(
        state=report.state,
        reason=report.reason,
        blocking=report.blocking,
        primary=_pass_block(report.primary),
        verification=_pass_block(report.verification),
        adjustment=report.adjustment,
        timings=report.timings,
    )
    return model.model_dump(mode="json")


__all__ = ["ResultBlockV1", "PassBlockV1", "SessionReportV1", "report_to_dict"]
