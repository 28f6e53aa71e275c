"""Bayesian ad-blocker detection: weighted probe fusion with a detect -> verify gate."""

from .browser import BrowserAdjustment, BrowserInfo, DeviceClass, adjustment_for_user_agent, resolve_adjustment
from .config import ConfigurationError, RunConfig, load_run_config
from .orchestrator import Orchestrator
from .posterior import BetaPosterior, Detector
from .probes import Probe, run_probe
from .registry import build_probes, register_probe
from .session import DetectionSession, detect
from .types import DetectionResult, Outcome, SessionReport, SessionState, is_blocking
from .verifier import Verifier

__all__ = [
    "BetaPosterior",
    "BrowserAdjustment",
    "BrowserInfo",
    "ConfigurationError",
    "DetectionResult",
    "DetectionSession",
    "Detector",
    "DeviceClass",
    "Orchestrator",
    "Outcome",
    "Probe",
    "RunConfig",
    "SessionReport",
    "SessionState",
    "Verifier",
    "adjustment_for_user_agent",
    "build_probes",
    "detect",
    "is_blocking",
    "load_run_config",
    "register_probe",
    "resolve_adjustment",
    "run_probe",
]
