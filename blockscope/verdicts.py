"""Shared helpers for user-facing verdict labels."""

from __future__ import annotations

from typing import Any, Tuple

from .types import SessionState, is_blocking

VerdictMeta = Tuple[str, str]


def classify_probability(prob: float | None) -> VerdictMeta:
    """
    Convert a posterior mean into (label, interpretation).

    Bands are descriptive only; decisions come from the session state.
    """
    value = _safe_float(prob, default=0.0)
    if value >= 0.75:
        return ("Likely blocking", "Most probes saw ad content suppressed.")
    if value <= 0.40:
        return ("Likely clean", "Probes mostly saw ad content render normally.")
    return ("Uncertain", "Probe evidence was mixed or too thin to call.")


def verdict_label(prob: float | None) -> str:
    return classify_probability(prob)[0]


def state_label(state: SessionState) -> str:
    if is_blocking(state):
        return "ADBLOCK CONFIRMED"
    if state is SessionState.BYPASSED:
        return "BYPASSED"
    return "NO ACTION"


def _safe_float(value: Any, default: float = 0.0) -> float:
    try:
        num = float(value)
    except (TypeError, ValueError):
        num = default
    if num != num:  # NaN check
        return default
    return num


__all__ = ["classify_probability", "verdict_label", "state_label"]
