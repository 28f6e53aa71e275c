"""
Global defaults for the detector, gates and timing.

Minimal, explicit defaults to avoid magic numbers scattered in code.
"""
from __future__ import annotations

# Prior biased against detection (false positives cost more than misses)
PRIOR_ALPHA0_DEFAULT: float = 1.0
PRIOR_BETA0_DEFAULT: float = 3.0

# Independent second-opinion prior for the verification pass
VERIFY_PRIOR_ALPHA0_DEFAULT: float = 1.0
VERIFY_PRIOR_BETA0_DEFAULT: float = 2.0

# Decision gates
THRESHOLD_DEFAULT: float = 0.75
CONFIDENCE_REQUIREMENT_DEFAULT: float = 0.90
MIN_EVIDENCE_COUNT_DEFAULT: int = 3
REQUIRED_POSITIVES_DEFAULT: int = 2
VERIFY_STRICTNESS_DELTA_DEFAULT: float = 0.05
VERIFY_PROBE_COUNT_DEFAULT: int = 3

# Timing (seconds)
DETECTION_DELAY_DEFAULT: float = 1.2
VERIFICATION_DELAY_DEFAULT: float = 1.5
PROBE_TIMEOUT_DEFAULT: float = 0.3

# Credible intervals
CREDIBLE_LEVEL_DEFAULT: float = 0.95
NORMAL_APPROX_MIN_PARAM: float = 5.0
Z_BY_LEVEL = {0.90: 1.645, 0.95: 1.96, 0.99: 2.58}
SPARSE_MULTIPLIER_BY_LEVEL = {0.90: 1.8, 0.95: 2.2, 0.99: 3.1}

# Probe names shared by the catalogue and the browser policy table
PROBE_BAIT_ELEMENTS = "baitElements"
PROBE_CONTROL_COMPARISON = "controlComparison"
PROBE_ADSENSE_CHECK = "adsenseCheck"
PROBE_HEIGHT_CHECK = "heightCheck"
PROBE_NETWORK_REQUEST = "networkRequest"
PROBE_SCRIPT_EXECUTION = "scriptExecution"

# Verification subset (name -> weight), most reliable probes only
VERIFY_PROBE_WEIGHTS_DEFAULT = {
    PROBE_BAIT_ELEMENTS: 1.2,
    PROBE_CONTROL_COMPARISON: 1.5,
    PROBE_HEIGHT_CHECK: 1.0,
}

# Grants
TEMP_ACCESS_HOURS_DEFAULT: float = 24.0
MAX_DISMISSALS_DEFAULT: int = 3
