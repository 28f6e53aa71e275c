from __future__ import annotations

import logging
from typing import Callable, Dict, List, Mapping, Optional

from .config import RunConfig, load_runtime_settings
from .probes import PROBE_CATALOGUE, Probe, ProbeFn

__all__ = ["register_probe", "unregister_probe", "get_probe_fn", "list_registered_probes", "build_probes"]

logger = logging.getLogger(__name__)

_PROBE_REGISTRY: Dict[str, ProbeFn] = {}


def _normalize(name: str) -> str:
    return (name or "").strip()


def register_probe(name: str, fn: ProbeFn) -> None:
    """Register the implementation of a detection method.

    Host integrations call this once at startup; the core only sees the contract.
    """
    if not callable(fn):
        raise TypeError("fn must be callable")
    key = _normalize(name)
    if not key:
        raise ValueError("probe name must be non-empty")
    existing = _PROBE_REGISTRY.get(key)
    if existing is not None and existing is not fn:
        raise ValueError(f"Probe '{key}' already registered to a different implementation")
    _PROBE_REGISTRY[key] = fn


def unregister_probe(name: str) -> None:
    _PROBE_REGISTRY.pop(_normalize(name), None)


def get_probe_fn(name: str) -> ProbeFn:
    key = _normalize(name)
    try:
        return _PROBE_REGISTRY[key]
    except KeyError as exc:
        raise ValueError(f"No probe implementation registered for '{name}'") from exc


def list_registered_probes() -> List[str]:
    return sorted(_PROBE_REGISTRY.keys())


def build_probes(
    config: Optional[RunConfig] = None,
    implementations: Optional[Mapping[str, Callable]] = None,
) -> List[Probe]:
    """Return Probes for every catalogue entry (plus extra implementations) that can run.

    Explicit ``implementations`` win over the registry; catalogue entries with
    no implementation anywhere are skipped.
    """
    cfg = config or RunConfig()
    impls: Dict[str, Callable] = dict(_PROBE_REGISTRY)
    impls.update({_normalize(k): v for k, v in (implementations or {}).items()})
    weights = cfg.probe_weights or {}

    probes: List[Probe] = []
    for name, spec in PROBE_CATALOGUE.items():
        fn = impls.pop(name, None)
        if fn is None:
            logger.debug("no implementation for catalogue probe %s; skipping", name)
            continue
        probes.append(
            Probe(
                name=name,
                weight=float(weights.get(name, spec.weight)),
                run=fn,
                timeout=spec.timeout,
                on_timeout=spec.on_timeout,
            )
        )

    if impls:
        timeout = load_runtime_settings().probe_timeout
        for name in sorted(impls):
            probes.append(Probe(name=name, weight=float(weights.get(name, 1.0)), run=impls[name], timeout=timeout))
    return probes
