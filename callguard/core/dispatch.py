"""Background scoring for one call session.

At most one evaluation runs at a time. Turns that arrive mid-evaluation set a
single pending flag, so a burst of turns collapses into one follow-up
evaluation over the full transcript. Results that land after the session
stops accepting them are discarded.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from ..protocol import RiskAssessment
from .scorer import RiskScorer
from .session import CallSession

logger = logging.getLogger(__name__)


class ScoringDispatcher:
    def __init__(
        self,
        session: CallSession,
        scorer: RiskScorer,
        *,
        on_assessment: Callable[[RiskAssessment], None] | None = None,
        cadence_turns: int | None = None,
        cadence_seconds: float | None = None,
        metrics=None,
    ):
        self._session = session
        self._scorer = scorer
        self._on_assessment = on_assessment
        self._cadence_turns = cadence_turns or scorer.config.cadence_turns
        self._cadence_seconds = (
            scorer.config.cadence_seconds if cadence_seconds is None else cadence_seconds
        )
        self._metrics = metrics
        self._task: asyncio.Task | None = None
        self._pending = False
        self._turns_since_eval = 0
        self._last_started: float | None = None
        self._accepting = True

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> bool:
        return self._pending

    def notify_turn(self) -> None:
        """Called after a transcript turn is appended. Never blocks."""
        if not self._accepting:
            return
        self._turns_since_eval += 1
        if self._turns_since_eval < self._cadence_turns:
            return
        self._turns_since_eval = 0
        self.trigger()

    def trigger(self) -> None:
        if not self._accepting:
            return
        if self.in_flight:
            self._pending = True
            return
        self._task = asyncio.create_task(self._run())

    async def wait_idle(self) -> None:
        """Wait until no evaluation is running or queued."""
        while self.in_flight:
            await asyncio.wait({self._task})

    def stop(self) -> None:
        """Stop applying results. An in-flight evaluation is cancelled."""
        self._accepting = False
        self._pending = False
        if self._task and not self._task.done():
            self._task.cancel()

    async def _run(self) -> None:
        try:
            while True:
                self._pending = False
                await self._respect_interval()
                if not self._accepting:
                    return
                self._last_started = time.monotonic()
                transcript = self._session.transcript()
                assessment = await self._scorer.assess(transcript)
                latency = time.monotonic() - self._last_started
                self._apply(assessment, latency)
                if not self._pending or not self._accepting:
                    return
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Background scoring failed for %s", self._session.session_id)

    async def _respect_interval(self) -> None:
        if not self._cadence_seconds or self._last_started is None:
            return
        wait = self._last_started + self._cadence_seconds - time.monotonic()
        if wait > 0:
            await asyncio.sleep(wait)

    def _apply(self, assessment: RiskAssessment, latency: float) -> None:
        if not self._accepting or not self._session.apply_assessment(assessment):
            logger.debug("Discarding late assessment for %s", self._session.session_id)
            return
        if self._metrics:
            self._metrics.record_assessment(self._session.session_id, assessment, latency=latency)
        logger.info(
            "Scored %s: %d (%s)%s",
            self._session.session_id, assessment.score, assessment.source.value,
            " ALERT" if assessment.alert else "",
        )
        if self._on_assessment:
            try:
                self._on_assessment(assessment)
            except Exception:
                logger.exception("on_assessment callback failed")
