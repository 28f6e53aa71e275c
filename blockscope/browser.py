"""Device/browser identification and the per-session threshold policy table."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, FrozenSet, Optional
import re

from .constants import PROBE_NETWORK_REQUEST, VERIFICATION_DELAY_DEFAULT


class DeviceClass(str, Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"


_MOBILE_RE = re.compile(r"iphone|ipad|ipod|android|blackberry|mini|windows\sce|palm", re.IGNORECASE)
_TABLET_RE = re.compile(r"(ipad|tablet|playbook|silk)|(android(?!.*mobile))", re.IGNORECASE)


@dataclass(frozen=True)
class BrowserInfo:
    family: str
    version: str = "Unknown"


@dataclass(frozen=True)
class BrowserAdjustment:
    """Read-only policy derived once per session from device and browser."""

    disabled_probe_names: FrozenSet[str] = frozenset()
    threshold_delta: float = 0.0
    verification_required: bool = False
    verification_delay: float = VERIFICATION_DELAY_DEFAULT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "disabled_probe_names": sorted(self.disabled_probe_names),
            "threshold_delta": self.threshold_delta,
            "verification_required": self.verification_required,
            "verification_delay": self.verification_delay,
        }


def detect_device_class(user_agent: Optional[str]) -> DeviceClass:
    ua = (user_agent or "").lower()
    if _TABLET_RE.search(ua):
        return DeviceClass.TABLET
    if _MOBILE_RE.search(ua):
        return DeviceClass.MOBILE
    return DeviceClass.DESKTOP


def _version(pattern: str, user_agent: str) -> str:
    match = re.search(pattern, user_agent)
    return match.group(1) if match else "Unknown"


def detect_browser(user_agent: Optional[str]) -> BrowserInfo:
    """Identify the browser family. Order matters: Chromium-based UAs also claim Safari."""
    ua = user_agent or ""
    if "Chrome" in ua and not re.search(r"Chromium|Edge|Edg|OPR|Opera", ua):
        return BrowserInfo("Chrome", _version(r"Chrome/(\d+\.\d+)", ua))
    if "Firefox" in ua:
        return BrowserInfo("Firefox", _version(r"Firefox/(\d+\.\d+)", ua))
    if "Safari" in ua and not re.search(r"Chrome|Chromium|Edge|Edg|OPR|Opera", ua):
        return BrowserInfo("Safari", _version(r"Version/(\d+\.\d+)", ua))
    if "Edg" in ua:
        return BrowserInfo("Edge", _version(r"Edg(?:e)?/(\d+\.\d+)", ua))
    if "OPR" in ua or "Opera" in ua:
        pattern = r"OPR/(\d+\.\d+)" if "OPR" in ua else r"Opera/(\d+\.\d+)"
        return BrowserInfo("Opera", _version(pattern, ua))
    return BrowserInfo("Unknown")


@lru_cache(maxsize=64)
def resolve_adjustment(
    device_class: DeviceClass,
    browser_family: str,
    default_verification_delay: float = VERIFICATION_DELAY_DEFAULT,
) -> BrowserAdjustment:
    """Pure policy lookup: (device, browser) -> BrowserAdjustment.

    Safari and Firefox ship tracking protection that trips the network probe,
    and mobile browsers often bundle content blockers, so both push the
    threshold up. Browser and device rows are additive.
    """
    disabled: set[str] = set()
    delta = 0.0
    verify = False
    delay = float(default_verification_delay)

    family = (browser_family or "").strip().lower()
    if family == "safari":
        disabled.add(PROBE_NETWORK_REQUEST)
        delta = 0.10
        verify = True
        delay = 2.0
    elif family == "firefox":
        disabled.add(PROBE_NETWORK_REQUEST)
        delta = 0.05
    elif family == "edge":
        delta = 0.03

    if DeviceClass(device_class) in (DeviceClass.MOBILE, DeviceClass.TABLET):
        delta += 0.05
        verify = True

    return BrowserAdjustment(
        disabled_probe_names=frozenset(disabled),
        threshold_delta=round(delta, 6),
        verification_required=verify,
        verification_delay=delay,
    )


def adjustment_for_user_agent(
    user_agent: Optional[str],
    default_verification_delay: float = VERIFICATION_DELAY_DEFAULT,
) -> BrowserAdjustment:
    return resolve_adjustment(
        detect_device_class(user_agent),
        detect_browser(user_agent).family,
        default_verification_delay,
    )
