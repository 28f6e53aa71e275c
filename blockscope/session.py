"""
Per-session detect -> verify state machine.

    IDLE -> BYPASSED
    IDLE -> DETECTING -> INCONCLUSIVE | CLEAN | CONFIRMED_POSITIVE
                      -> PENDING_VERIFICATION -> VERIFIED_POSITIVE | RETRACTED

Detection runs at most once per session and verification at most once, only
after a tentative positive. ``on_adblock_confirmed`` fires zero or one time.
Ending the session (page navigation) cancels outstanding probes and any
scheduled verification; nothing fires afterwards.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

from .browser import BrowserAdjustment, adjustment_for_user_agent
from .config import RunConfig
from .gate import EntitlementGate, check_bypass, is_dev_environment
from .orchestrator import Orchestrator
from .probes import Probe
from .telemetry import timed
from .types import PassReport, SessionReport, SessionState
from .verifier import Verifier

logger = logging.getLogger(__name__)

ConfirmedCallback = Callable[[], Any]
SleepFn = Callable[[float], Awaitable[Any]]


class DetectionSession:
    def __init__(
        self,
        probes: Sequence[Probe],
        config: Optional[RunConfig] = None,
        *,
        user_agent: Optional[str] = None,
        adjustment: Optional[BrowserAdjustment] = None,
        gate: Optional[EntitlementGate] = None,
        hostname: Optional[str] = None,
        on_adblock_confirmed: Optional[ConfirmedCallback] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.config = config or RunConfig()
        # Device/browser identity does not change mid-session: resolve once.
        self.adjustment = adjustment or adjustment_for_user_agent(user_agent, self.config.verification_delay)
        self.probes = tuple(probes)
        self.gate = gate
        self.hostname = hostname
        self.on_adblock_confirmed = on_adblock_confirmed
        self._sleep = sleep
        self._state = SessionState.IDLE
        self._report: Optional[SessionReport] = None
        self._task: Optional[asyncio.Task] = None
        self._fired = False
        self._ended = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def report(self) -> Optional[SessionReport]:
        return self._report

    @property
    def confirmed(self) -> bool:
        return self._fired

    def start(self) -> "asyncio.Task[SessionReport]":
        """Schedule the session on the running loop (idempotent)."""
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())
        return self._task

    async def run(self) -> SessionReport:
        return await asyncio.shield(self.start())

    def end(self) -> None:
        """Discard outstanding work; partial results never become visible."""
        self._ended = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _run(self) -> SessionReport:
        timings: Dict[str, float] = {}
        try:
            with timed("session", sink=timings):
                report = await self._advance(timings)
        except asyncio.CancelledError:
            logger.info("session ended before completion (state=%s)", self._state.value)
            raise
        except Exception:
            logger.exception("detection session failed; taking no action")
            report = SessionReport(SessionState.INCONCLUSIVE, "internal_error")
            self._state = report.state
        report.timings = timings
        report.adjustment = self.adjustment.to_dict()
        self._report = report
        return report

    def _finish(self, state: SessionState, reason: str, primary: Optional[PassReport] = None, verification: Optional[PassReport] = None) -> SessionReport:
        self._state = state
        logger.info("session finished: %s (%s)", state.value, reason)
        return SessionReport(state=state, reason=reason, primary=primary, verification=verification)

    async def _advance(self, timings: Dict[str, float]) -> SessionReport:
        cfg = self.config
        if not cfg.enabled:
            return self._finish(SessionState.BYPASSED, "disabled")
        if check_bypass(self.gate):
            return self._finish(SessionState.BYPASSED, "entitlement")
        if cfg.bypass_in_dev_mode and is_dev_environment(self.hostname):
            return self._finish(SessionState.BYPASSED, "dev_environment")

        if cfg.detection_delay > 0:
            await self._sleep(cfg.detection_delay)

        self._state = SessionState.DETECTING
        orchestrator = Orchestrator(cfg, self.adjustment, self.probes)
        primary = await orchestrator.run(timings)

        if primary.state is SessionState.CONFIRMED_POSITIVE:
            report = self._finish(primary.state, primary.reason, primary.report)
            await self._fire()
            return report
        if primary.state is not SessionState.PENDING_VERIFICATION:
            return self._finish(primary.state, primary.reason, primary.report)

        self._state = SessionState.PENDING_VERIFICATION
        logger.info("primary pass positive; verifying in %.2fs", self.adjustment.verification_delay)
        if self.adjustment.verification_delay > 0:
            await self._sleep(self.adjustment.verification_delay)

        verifier = Verifier(cfg, orchestrator.effective_probes(), orchestrator.effective_threshold)
        second = await verifier.run(timings)
        report = self._finish(second.state, second.reason, primary.report, second.report)
        if second.state is SessionState.VERIFIED_POSITIVE:
            await self._fire()
        return report

    async def _fire(self) -> None:
        if self._fired or self._ended:
            return
        self._fired = True
        if self.on_adblock_confirmed is None:
            return
        try:
            value = self.on_adblock_confirmed()
            if inspect.isawaitable(value):
                await value
        except Exception:
            logger.exception("on_adblock_confirmed callback failed")


async def detect(probes: Sequence[Probe], config: Optional[RunConfig] = None, **kwargs: Any) -> SessionReport:
    """Convenience: run a single session to completion."""
    return await DetectionSession(probes, config, **kwargs).run()
