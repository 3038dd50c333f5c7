"""Per-page analysis scheduling: cooldown, single-shot policy and session lifecycle."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from browsebuddy.analysis.session import TextClassifierSession
from browsebuddy.analysis.verdict import AnalysisVerdict, normalize_page_text
from browsebuddy.errors import BudgetExhaustionError, ClassificationError, InitializationError

LOGGER = logging.getLogger("browsebuddy.analysis.scheduler")


class SchedulerState(str, Enum):
    IDLE = "idle"
    SESSION_INITIALIZING = "session_initializing"
    READY = "ready"
    ANALYZING = "analyzing"
    COOLDOWN = "cooldown"
    EXHAUSTED = "exhausted"


@dataclass
class AnalysisOutcome:
    success: bool
    skipped: bool = False
    reason: Optional[str] = None
    verdict: Optional[AnalysisVerdict] = None
    error: Optional[str] = None

    @classmethod
    def skip(cls, reason: str) -> "AnalysisOutcome":
        return cls(success=False, skipped=True, reason=reason)

    @classmethod
    def failed(cls, error: str) -> "AnalysisOutcome":
        return cls(success=False, error=error)


class AnalysisScheduler:
    """Drives the classifier session for a single page.

    ``forward`` receives the verdict payload after the one successful analysis a
    page is allowed; it may be a plain function or a coroutine function.
    """

    def __init__(
        self,
        session: TextClassifierSession,
        forward: Callable[[Dict[str, Any]], Any],
        cooldown_s: float = 30.0,
        poll_interval_s: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session
        self._forward = forward
        self.cooldown_s = cooldown_s
        self.poll_interval_s = poll_interval_s
        self._clock = clock
        self.state = SchedulerState.READY if session.is_ready else SchedulerState.IDLE
        self.valid = True
        self.has_analyzed = False
        self.in_flight = False
        self._last_attempt: Optional[float] = None
        self._task: Optional[asyncio.Task] = None

    def is_eligible(self, now: Optional[float] = None) -> bool:
        if not self.valid or self.has_analyzed or self.in_flight:
            return False
        if self._last_attempt is None:
            return True
        now = self._clock() if now is None else now
        return now - self._last_attempt > self.cooldown_s

    def _transition(self, state: SchedulerState) -> None:
        # EXHAUSTED sticks until reset_page()
        if self.valid:
            self.state = state

    def _skip_reason(self) -> str:
        if not self.valid:
            return "stopped"
        if self.has_analyzed:
            return "already analyzed"
        if self.in_flight:
            return "analysis in flight"
        return "cooldown"

    async def _prepare_session(self) -> None:
        if self._session.needs_renewal():
            self._transition(SchedulerState.SESSION_INITIALIZING)
        await self._session.ensure_budget()
        self._transition(SchedulerState.READY)

    async def _recover_budget(self) -> None:
        self._transition(SchedulerState.SESSION_INITIALIZING)
        try:
            await self._session.renew()
        except InitializationError as exc:
            LOGGER.warning("Session renewal after token error failed: %s", exc)
            self._transition(SchedulerState.IDLE)
            return
        self._transition(SchedulerState.READY)

    async def tick(self, text: str) -> AnalysisOutcome:
        now = self._clock()
        if not self.is_eligible(now):
            return AnalysisOutcome.skip(self._skip_reason())
        text = normalize_page_text(text)
        if not text:
            return AnalysisOutcome.skip("no text")

        self.in_flight = True
        self._last_attempt = now
        try:
            try:
                await self._prepare_session()
            except InitializationError as exc:
                self._transition(SchedulerState.IDLE)
                return AnalysisOutcome.failed(f"initialization failed: {exc}")

            if not self.valid:
                return AnalysisOutcome.skip("stopped")
            self.state = SchedulerState.ANALYZING
            try:
                raw = await self._session.classify(text)
            except BudgetExhaustionError as exc:
                LOGGER.warning("Token-related analysis failure; refreshing session: %s", exc)
                await self._recover_budget()
                return AnalysisOutcome.failed(str(exc))
            except ClassificationError as exc:
                LOGGER.warning("Analysis failed: %s", exc)
                self._transition(SchedulerState.READY)
                return AnalysisOutcome.failed(str(exc))

            if not self.valid:
                LOGGER.debug("Scheduler stopped during analysis; dropping result")
                return AnalysisOutcome.skip("stopped")

            verdict = AnalysisVerdict.from_response(raw)
            LOGGER.info(
                "Content analysis result: harmful=%s type=%s risk=%s",
                verdict.harmful_content,
                verdict.type.value,
                verdict.risk_level.value,
            )
            try:
                result = self._forward(verdict.to_payload())
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                LOGGER.warning("Failed to forward analysis result: %s", exc)
                self._transition(SchedulerState.READY)
                return AnalysisOutcome.failed(f"forward failed: {exc}")

            # Single-shot is spent only once the verdict has been delivered.
            self.has_analyzed = True
            self._last_attempt = self._clock()
            self._transition(SchedulerState.COOLDOWN)
            return AnalysisOutcome(success=True, verdict=verdict)
        finally:
            self.in_flight = False

    async def run(
        self,
        text_source: Callable[[], str],
        is_visible: Callable[[], bool] = lambda: True,
    ) -> None:
        """Poll until the page is analysed or the scheduler is stopped."""
        while self.valid and not self.has_analyzed:
            if is_visible():
                try:
                    await self.tick(text_source())
                except Exception:
                    LOGGER.exception("Error in page monitor tick")
            if self.has_analyzed:
                LOGGER.info("Analysis complete, stopping monitoring")
                break
            await asyncio.sleep(self.poll_interval_s)

    def start(
        self,
        text_source: Callable[[], str],
        is_visible: Callable[[], bool] = lambda: True,
    ) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.ensure_future(self.run(text_source, is_visible))
        return self._task

    def stop(self) -> None:
        """Synchronously stop polling; nothing is forwarded after this returns."""
        self.valid = False
        self.state = SchedulerState.EXHAUSTED
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def reset_page(self) -> None:
        self.has_analyzed = False
        self._last_attempt = None
        self.valid = True
        self.state = SchedulerState.READY if self._session.is_ready else SchedulerState.IDLE
