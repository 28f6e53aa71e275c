"""Entitlement gate checked once before any probe runs."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, MutableMapping, Optional, Protocol, runtime_checkable

from .constants import MAX_DISMISSALS_DEFAULT, TEMP_ACCESS_HOURS_DEFAULT

logger = logging.getLogger(__name__)

PAYMENT_KEY = "payment_verified_v1"
TEMP_ACCESS_KEY = "temp_access_v1"
DISMISS_COUNT_KEY = "dismiss_count_v1"

_DEV_HOSTS = ("localhost", "127.0.0.1")
_DEV_MARKERS = ("dev.", "staging.", ".test", ".local")


@runtime_checkable
class EntitlementGate(Protocol):
    def has_valid_bypass(self) -> bool: ...


class StaticGate:
    """Fixed answer; useful for hosts that resolve entitlement elsewhere."""

    def __init__(self, bypass: bool = False) -> None:
        self.bypass = bool(bypass)

    def has_valid_bypass(self) -> bool:
        return self.bypass


class ExpiringGrantGate:
    """Bypass while a stored JSON grant has an expiry in the future.

    Expired or unreadable records are removed from the store.
    """

    def __init__(
        self,
        store: MutableMapping[str, str],
        key: str,
        expiry_field: str = "valid_until",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.key = key
        self.expiry_field = expiry_field
        self.clock = clock

    def has_valid_bypass(self) -> bool:
        raw = self.store.get(self.key)
        if not raw:
            return False
        try:
            record = json.loads(raw)
            expiry = float(record[self.expiry_field])
        except (ValueError, TypeError, KeyError) as exc:
            logger.warning("discarding unreadable grant %s: %s", self.key, exc)
            self.store.pop(self.key, None)
            return False
        if expiry > self.clock():
            return True
        self.store.pop(self.key, None)
        return False


def payment_gate(store: MutableMapping[str, str], clock: Callable[[], float] = time.time) -> ExpiringGrantGate:
    return ExpiringGrantGate(store, PAYMENT_KEY, "valid_until", clock)


def temporary_access_gate(store: MutableMapping[str, str], clock: Callable[[], float] = time.time) -> ExpiringGrantGate:
    return ExpiringGrantGate(store, TEMP_ACCESS_KEY, "expiration", clock)


def grant_temporary_access(
    store: MutableMapping[str, str],
    *,
    hours: float = TEMP_ACCESS_HOURS_DEFAULT,
    max_dismissals: int = MAX_DISMISSALS_DEFAULT,
    now: Optional[float] = None,
) -> Optional[Dict[str, Any]]:
    """Record a "continue for now" dismissal and grant a temporary pass.

    Returns the stored grant, or None once the dismissal allowance is used up.
    """
    try:
        count = int(store.get(DISMISS_COUNT_KEY) or 0)
    except ValueError:
        count = 0
    if count >= max_dismissals:
        logger.info("temporary access refused after %d dismissals", count)
        return None
    count += 1
    store[DISMISS_COUNT_KEY] = str(count)
    ts = time.time() if now is None else float(now)
    grant = {"timestamp": ts, "expiration": ts + hours * 3600.0, "dismiss_count": count}
    store[TEMP_ACCESS_KEY] = json.dumps(grant)
    return grant


class AnyGate:
    """Bypass when any member gate grants one."""

    def __init__(self, *gates: EntitlementGate) -> None:
        self.gates = gates

    def has_valid_bypass(self) -> bool:
        return any(check_bypass(g) for g in self.gates)


def check_bypass(gate: Optional[EntitlementGate]) -> bool:
    """Evaluate a gate. A gate that raises counts as a bypass."""
    if gate is None:
        return False
    try:
        return bool(gate.has_valid_bypass())
    except Exception:
        logger.exception("entitlement gate %r failed; skipping detection", gate)
        return True


def is_dev_environment(hostname: Optional[str]) -> bool:
    host = (hostname or "").strip().lower()
    if not host:
        return False
    return host in _DEV_HOSTS or any(marker in host for marker in _DEV_MARKERS)
