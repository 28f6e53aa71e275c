from __future__ import annotations

import asyncio
import atexit
import concurrent.futures as _fut
import inspect
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from .config import load_runtime_settings
from .constants import (
    PROBE_ADSENSE_CHECK,
    PROBE_BAIT_ELEMENTS,
    PROBE_CONTROL_COMPARISON,
    PROBE_HEIGHT_CHECK,
    PROBE_NETWORK_REQUEST,
    PROBE_SCRIPT_EXECUTION,
    PROBE_TIMEOUT_DEFAULT,
)
from .types import Outcome, ProbeRecord

logger = logging.getLogger(__name__)

ProbeFn = Callable[[], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class Probe:
    """A named, weighted unit of evidence.

    ``run`` may be a plain callable or a coroutine function. It should return
    a bool (True = blocking observed), an ``Outcome``, or None for
    indeterminate. Plain callables are executed off the event loop.
    """

    name: str
    weight: float
    run: ProbeFn
    enabled: bool = True
    timeout: float = PROBE_TIMEOUT_DEFAULT
    # Outcome reported when the bounded wait expires (e.g. a pixel that never loads)
    on_timeout: Outcome = Outcome.INDETERMINATE

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("probe name must be non-empty")
        if not float(self.weight) > 0:
            raise ValueError(f"probe {self.name!r} weight must be > 0")
        if not callable(self.run):
            raise TypeError(f"probe {self.name!r} run must be callable")
        if self.timeout <= 0:
            raise ValueError(f"probe {self.name!r} timeout must be > 0")

    def with_weight(self, weight: float) -> "Probe":
        return Probe(
            name=self.name,
            weight=weight,
            run=self.run,
            enabled=self.enabled,
            timeout=self.timeout,
            on_timeout=self.on_timeout,
        )


@dataclass(frozen=True)
class ProbeSpec:
    """Catalogue entry: defaults for a detection method, independent of implementation."""

    name: str
    weight: float
    timeout: float
    on_timeout: Outcome = Outcome.INDETERMINATE


# Bounded waits mirror the settle time each technique needs in a browser.
PROBE_CATALOGUE: Dict[str, ProbeSpec] = {
    spec.name: spec
    for spec in (
        ProbeSpec(PROBE_BAIT_ELEMENTS, 1.0, 0.10),
        # Bait vs. control element is the most discriminating check
        ProbeSpec(PROBE_CONTROL_COMPARISON, 1.5, 0.10),
        ProbeSpec(PROBE_ADSENSE_CHECK, 1.0, 0.30),
        ProbeSpec(PROBE_HEIGHT_CHECK, 0.8, 0.10),
        ProbeSpec(PROBE_NETWORK_REQUEST, 0.8, 0.30, on_timeout=Outcome.POSITIVE),
        ProbeSpec(PROBE_SCRIPT_EXECUTION, 1.2, 0.30),
    )
}


_pool: Optional[_fut.ThreadPoolExecutor] = None
_pool_lock = threading.Lock()


def _probe_pool() -> _fut.ThreadPoolExecutor:
    """Worker pool for synchronous probes, separate from the loop's default executor.

    A sync probe that overruns its timeout keeps its worker until it returns,
    but ``asyncio.run`` no longer waits for it on shutdown.
    """
    global _pool
    with _pool_lock:
        if _pool is None:
            workers = max(1, load_runtime_settings().probe_workers)
            _pool = _fut.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="blockscope-probe")
        return _pool


def shutdown_probe_pool() -> None:
    """Drop the sync-probe pool without waiting on probes that are still running."""
    global _pool
    with _pool_lock:
        pool, _pool = _pool, None
    if pool is not None:
        pool.shutdown(wait=False, cancel_futures=True)


atexit.register(shutdown_probe_pool)


async def _invoke(fn: ProbeFn) -> Any:
    if inspect.iscoroutinefunction(fn):
        return await fn()
    loop = asyncio.get_running_loop()
    value = await loop.run_in_executor(_probe_pool(), fn)
    if inspect.isawaitable(value):
        return await value
    return value


async def run_probe(probe: Probe) -> ProbeRecord:
    """Run one probe inside its bounded window. Never raises (except cancellation)."""
    start = time.perf_counter()
    error: Optional[str] = None
    try:
        raw = await asyncio.wait_for(_invoke(probe.run), timeout=probe.timeout)
        outcome = Outcome.from_value(raw)
    except asyncio.TimeoutError:
        outcome = probe.on_timeout
        error = f"timeout after {probe.timeout:.3f}s"
        logger.debug("probe timed out", extra={"probe": probe.name, "timeout": probe.timeout})
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        outcome = Outcome.INDETERMINATE
        error = f"{type(exc).__name__}: {exc}"
        logger.warning("probe %s failed: %s", probe.name, error)
    elapsed_ms = int((time.perf_counter() - start) * 1000)
    return ProbeRecord(name=probe.name, weight=float(probe.weight), outcome=outcome, elapsed_ms=elapsed_ms, error=error)
