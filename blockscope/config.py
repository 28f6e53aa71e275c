from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional
import json
import logging
import os

import yaml

from .constants import (
    CONFIDENCE_REQUIREMENT_DEFAULT,
    CREDIBLE_LEVEL_DEFAULT,
    DETECTION_DELAY_DEFAULT,
    MIN_EVIDENCE_COUNT_DEFAULT,
    PRIOR_ALPHA0_DEFAULT,
    PRIOR_BETA0_DEFAULT,
    PROBE_TIMEOUT_DEFAULT,
    REQUIRED_POSITIVES_DEFAULT,
    THRESHOLD_DEFAULT,
    VERIFICATION_DELAY_DEFAULT,
    VERIFY_PRIOR_ALPHA0_DEFAULT,
    VERIFY_PRIOR_BETA0_DEFAULT,
    VERIFY_PROBE_COUNT_DEFAULT,
    VERIFY_PROBE_WEIGHTS_DEFAULT,
    VERIFY_STRICTNESS_DELTA_DEFAULT,
    Z_BY_LEVEL,
)

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Raised when configuration values cannot reach a running detector."""


# Fields that are probabilities; file/env values outside [0, 1] are clamped on load.
_UNIT_FIELDS = ("threshold", "confidence_requirement")
_INT_FIELDS = ("min_evidence_count", "required_positives", "verification_probe_count")
_BOOL_FIELDS = ("enabled", "gate_on_required_positives", "bypass_in_dev_mode")
_FLOAT_FIELDS = (
    "prior_alpha0",
    "prior_beta0",
    "threshold",
    "confidence_requirement",
    "credible_level",
    "detection_delay",
    "verification_delay",
    "verification_strictness_delta",
    "verification_prior_alpha0",
    "verification_prior_beta0",
)
_TRUE_TEXT = {"1", "true", "yes", "on"}
_FALSE_TEXT = {"0", "false", "no", "off", ""}


def _as_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    try:
        num = float(value)
        whole = int(num)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc
    if num != whole:
        raise ConfigurationError(f"{name} must be a whole number, got {value!r}")
    return whole


def _as_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    try:
        num = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc
    if num != num:  # NaN check
        raise ConfigurationError(f"{name} must be a number, got NaN")
    return num


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_TEXT:
            return True
        if text in _FALSE_TEXT:
            return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _as_weights(name: str, value: Any) -> Dict[str, float]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"{name} must be a mapping of probe name to weight")
    return {str(k): _as_float(f"{name}[{k}]", v) for k, v in value.items()}


@dataclass
class RunConfig:
    enabled: bool = True
    prior_alpha0: float = PRIOR_ALPHA0_DEFAULT
    prior_beta0: float = PRIOR_BETA0_DEFAULT
    threshold: float = THRESHOLD_DEFAULT
    confidence_requirement: float = CONFIDENCE_REQUIREMENT_DEFAULT
    min_evidence_count: int = MIN_EVIDENCE_COUNT_DEFAULT
    # Informational unless gate_on_required_positives is set
    required_positives: int = REQUIRED_POSITIVES_DEFAULT
    gate_on_required_positives: bool = False
    credible_level: float = CREDIBLE_LEVEL_DEFAULT
    detection_delay: float = DETECTION_DELAY_DEFAULT
    verification_delay: float = VERIFICATION_DELAY_DEFAULT
    verification_strictness_delta: float = VERIFY_STRICTNESS_DELTA_DEFAULT
    verification_prior_alpha0: float = VERIFY_PRIOR_ALPHA0_DEFAULT
    verification_prior_beta0: float = VERIFY_PRIOR_BETA0_DEFAULT
    # name -> weight; empty mapping means "top verification_probe_count by weight"
    verification_probes: Dict[str, float] = field(default_factory=lambda: dict(VERIFY_PROBE_WEIGHTS_DEFAULT))
    verification_probe_count: int = VERIFY_PROBE_COUNT_DEFAULT
    bypass_in_dev_mode: bool = True
    # name -> weight overrides for the probe catalogue
    probe_weights: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Quoted numbers and flag strings from YAML/JSON/env become real ints, floats and bools
        for name in _INT_FIELDS:
            setattr(self, name, _as_int(name, getattr(self, name)))
        for name in _FLOAT_FIELDS:
            setattr(self, name, _as_float(name, getattr(self, name)))
        for name in _BOOL_FIELDS:
            setattr(self, name, _as_bool(name, getattr(self, name)))
        self.verification_probes = _as_weights("verification_probes", self.verification_probes)
        self.probe_weights = _as_weights("probe_weights", self.probe_weights)

        if not (self.prior_alpha0 > 0 and self.prior_beta0 > 0):
            raise ConfigurationError("prior_alpha0 and prior_beta0 must be > 0")
        if not (self.verification_prior_alpha0 > 0 and self.verification_prior_beta0 > 0):
            raise ConfigurationError("verification priors must be > 0")
        for name in _UNIT_FIELDS:
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                raise ConfigurationError(f"{name} must be in [0, 1], got {value}")
        if self.min_evidence_count < 1:
            raise ConfigurationError("min_evidence_count must be >= 1")
        if self.required_positives < 1:
            raise ConfigurationError("required_positives must be >= 1")
        if self.verification_probe_count < 1:
            raise ConfigurationError("verification_probe_count must be >= 1")
        if self.credible_level not in Z_BY_LEVEL:
            raise ConfigurationError(f"credible_level must be one of {sorted(Z_BY_LEVEL)}")
        if self.detection_delay < 0 or self.verification_delay < 0:
            raise ConfigurationError("delays must be >= 0")
        if not (0.0 <= self.verification_strictness_delta <= 1.0):
            raise ConfigurationError("verification_strictness_delta must be in [0, 1]")
        for label, weights in (("verification_probes", self.verification_probes), ("probe_weights", self.probe_weights)):
            for probe_name, weight in weights.items():
                if not weight > 0:
                    raise ConfigurationError(f"{label}[{probe_name}] must be > 0")


@dataclass(frozen=True)
class RuntimeSettings:
    probe_timeout: float = float(os.getenv("BLOCKSCOPE_PROBE_TIMEOUT", str(PROBE_TIMEOUT_DEFAULT)))
    log_level: str = os.getenv("BLOCKSCOPE_LOG_LEVEL", "WARNING")
    probe_workers: int = int(os.getenv("BLOCKSCOPE_PROBE_CONCURRENCY", "8"))


def load_runtime_settings() -> RuntimeSettings:
    """Return runtime execution settings (probe timeout, log level, sync-probe workers)."""
    return RuntimeSettings()


def _clamp_unit(name: str, value: Any) -> float:
    num = _as_float(name, value)
    clamped = min(max(num, 0.0), 1.0)
    if clamped != num:
        logger.warning("config value clamped", extra={"field": name, "value": num, "clamped": clamped})
    return clamped


def _env_overrides() -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if os.getenv("BLOCKSCOPE_THRESHOLD") is not None:
        out["threshold"] = os.getenv("BLOCKSCOPE_THRESHOLD")
    if os.getenv("BLOCKSCOPE_CONFIDENCE") is not None:
        out["confidence_requirement"] = os.getenv("BLOCKSCOPE_CONFIDENCE")
    if os.getenv("BLOCKSCOPE_MIN_EVIDENCE") is not None:
        out["min_evidence_count"] = _as_int("BLOCKSCOPE_MIN_EVIDENCE", os.getenv("BLOCKSCOPE_MIN_EVIDENCE"))
    if os.getenv("BLOCKSCOPE_DISABLED"):
        out["enabled"] = False
    return out


def coerce_run_config(data: Optional[Dict[str, Any]]) -> RunConfig:
    """Build a RunConfig from loose mapping data, clamping probability fields."""
    payload = dict(data or {})
    known = {f.name for f in fields(RunConfig)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ConfigurationError(f"Unknown config keys: {', '.join(unknown)}")
    for name in _UNIT_FIELDS:
        if name in payload:
            payload[name] = _clamp_unit(name, payload[name])
    try:
        return RunConfig(**payload)
    except TypeError as exc:
        raise ConfigurationError(str(exc)) from exc


def load_run_config(path: str | Path | None = None) -> RunConfig:
    """Load a YAML/JSON run config; with no path, defaults plus env overrides."""
    data: Any = {}
    if path is not None:
        p = Path(path)
        text = p.read_text()
        try:
            data = yaml.safe_load(text) if p.suffix in {".yaml", ".yml"} else json.loads(text)
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Could not parse config file {p}: {exc}") from exc
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {p} must contain a mapping")
    # Env fallback (config takes precedence)
    for key, value in _env_overrides().items():
        data.setdefault(key, value)
    return coerce_run_config(data)
