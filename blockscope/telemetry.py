from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional

log = logging.getLogger("blockscope.telemetry")


@contextmanager
def timed(stage: str, ctx: Dict[str, Any] | None = None, sink: Optional[Dict[str, float]] = None):
    """Context manager that logs elapsed ms for the given stage.

    When ``sink`` is given the elapsed ms is also stored under ``sink[stage]``.
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        payload = {"stage": stage, "ms": elapsed_ms}
        if ctx:
            payload.update(ctx)
        if sink is not None:
            sink[stage] = elapsed_ms
        log.info("timing", extra=payload)
