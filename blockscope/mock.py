from __future__ import annotations

import hashlib
from typing import Callable, Dict, Iterable, Mapping, Optional

import numpy as np

from .probes import PROBE_CATALOGUE
from .types import Outcome


def make_probe_seed(name: str, seed: int, stage: str = "primary") -> int:
    """Deterministic 64-bit seed per (probe, session seed, stage)."""
    canon = "|".join(["BLOCKSCOPE-MOCK", f"probe={name}", f"seed={seed}", f"stage={stage}"])
    h = hashlib.sha256(canon.encode("utf-8")).digest()
    return int.from_bytes(h[:8], "big")


def mock_probe_fns(
    block_rate: float,
    seed: int = 0,
    names: Optional[Iterable[str]] = None,
    failure_rate: float = 0.0,
) -> Dict[str, Callable[[], Optional[bool]]]:
    """Deterministic mock probe implementations for smoke runs (no browser).

    Each probe draws from its own seeded generator: it reports blocking with
    probability ``block_rate`` and returns None (indeterminate) with
    probability ``failure_rate``. Repeated calls advance the generator, so a
    verification pass sees fresh draws.
    """
    if not (0.0 <= block_rate <= 1.0):
        raise ValueError("block_rate must be in [0, 1]")
    if not (0.0 <= failure_rate <= 1.0):
        raise ValueError("failure_rate must be in [0, 1]")

    def _make(name: str) -> Callable[[], Optional[bool]]:
        rng = np.random.default_rng(make_probe_seed(name, seed))

        def _run() -> Optional[bool]:
            if failure_rate and float(rng.random()) < failure_rate:
                return None
            return bool(float(rng.random()) < block_rate)

        return _run

    return {name: _make(name) for name in (names or PROBE_CATALOGUE.keys())}


def scripted_probe_fns(outcomes: Mapping[str, object]) -> Dict[str, Callable[[], Outcome]]:
    """Probe implementations that always return a fixed outcome."""
    fns: Dict[str, Callable[[], Outcome]] = {}
    for name, value in outcomes.items():
        outcome = Outcome.from_value(value)
        fns[name] = (lambda o=outcome: o)
    return fns
