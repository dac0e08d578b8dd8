"""Tiered scam-risk scoring.

Architecture: two-tier escalation.
  Tier 1 (microseconds): deterministic indicator matching over the whole
  transcript. Three or more distinct indicators short-circuit to an alert
  without any network call.
  Tier 2 (hundreds of ms): an LLM classifier reassesses transcripts Tier 1
  could not settle. Its failures degrade to the Tier-1 result.

Only the Tier-1 short-circuit raises the alert flag.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from ..config import ScoringConfig
from ..errors import ClassificationError
from ..protocol import AssessmentSource, RiskAssessment, TranscriptTurn
from .classifier import Classification

logger = logging.getLogger(__name__)


class Classifier(Protocol):
    async def classify(self, transcript: str, indicators: Sequence[str]) -> Classification: ...


@dataclass(frozen=True)
class PatternMatch:
    """Tier-1 outcome for one transcript."""

    matches: tuple[str, ...]
    base_score: int
    short_circuit: bool


def render_transcript(transcript: str | Sequence[TranscriptTurn]) -> str:
    if isinstance(transcript, str):
        return transcript
    return "\n".join(turn.render() for turn in transcript)


def _union_evidence(*groups: Sequence[str]) -> tuple[str, ...]:
    """Case-insensitive union keeping the first spelling seen."""
    seen: dict[str, str] = {}
    for group in groups:
        for item in group:
            seen.setdefault(item.lower(), item)
    return tuple(seen.values())


class RiskScorer:
    def __init__(
        self,
        config: ScoringConfig | None = None,
        *,
        classifier: Classifier | None = None,
        metrics=None,
    ):
        self._config = config or ScoringConfig()
        self._classifier = classifier
        self._metrics = metrics

    @property
    def config(self) -> ScoringConfig:
        return self._config

    @property
    def has_classifier(self) -> bool:
        return self._classifier is not None

    def match(self, text: str) -> list[str]:
        """Distinct indicators contained in text, in indicator-list order.

        Plain substring membership, so inflections such as "gift cards" count.
        """
        lowered = text.lower()
        return [phrase for phrase in self._config.indicators if phrase in lowered]

    def quick_check(self, transcript: str | Sequence[TranscriptTurn]) -> PatternMatch:
        cfg = self._config
        matches = tuple(self.match(render_transcript(transcript)))
        base = min(len(matches) * cfg.match_weight, cfg.score_cap_tier1)
        return PatternMatch(
            matches=matches,
            base_score=base,
            short_circuit=len(matches) >= cfg.escalation_threshold,
        )

    def assess_patterns(self, transcript: str | Sequence[TranscriptTurn]) -> RiskAssessment:
        """Tier 1 only. Used for offline evaluation and as the degraded result."""
        text = render_transcript(transcript)
        if not text.strip():
            return self._assessment(0)
        return self._from_patterns(self.quick_check(text))

    async def assess(self, transcript: str | Sequence[TranscriptTurn]) -> RiskAssessment:
        """Full two-tier assessment. Never raises for classifier failures."""
        cfg = self._config
        text = render_transcript(transcript)
        if not text.strip():
            return self._assessment(0)

        result = self.quick_check(text)
        if result.short_circuit or self._classifier is None:
            if self._classifier is None and not result.short_circuit:
                logger.debug("No classifier configured, using pattern-based scoring only")
            return self._from_patterns(result)

        start = time.monotonic()
        try:
            classification = await self._classifier.classify(text, cfg.indicators)
            ai_score = round(classification.score)
            keywords = [str(k) for k in classification.keywords]
        except ClassificationError as e:
            logger.warning("AI analysis failed, using pattern matching: %s", e)
            self._record_tier2(time.monotonic() - start, ok=False)
            return self._from_patterns(result)
        except Exception:
            logger.exception("Classifier raised unexpectedly, using pattern matching")
            self._record_tier2(time.monotonic() - start, ok=False)
            return self._from_patterns(result)
        self._record_tier2(time.monotonic() - start, ok=True)

        score = min(max(result.base_score, ai_score), cfg.score_cap_final)
        evidence = _union_evidence(result.matches, keywords)
        return self._assessment(
            score,
            evidence=evidence[: cfg.evidence_limit],
            source=AssessmentSource.PATTERN_AI,
        )

    def _from_patterns(self, result: PatternMatch) -> RiskAssessment:
        cfg = self._config
        evidence = result.matches[: cfg.evidence_limit]
        if result.short_circuit:
            return self._assessment(
                min(result.base_score + cfg.short_circuit_bonus, cfg.short_circuit_cap),
                evidence=evidence,
                alert=True,
            )
        return self._assessment(result.base_score, evidence=evidence)

    def _assessment(
        self,
        score: int,
        *,
        evidence: tuple[str, ...] = (),
        alert: bool = False,
        source: AssessmentSource = AssessmentSource.PATTERN,
    ) -> RiskAssessment:
        return RiskAssessment(
            score=int(score),
            evidence=evidence,
            alert=alert,
            source=source,
            scam_threshold=self._config.scam_threshold,
        )

    def _record_tier2(self, latency: float, *, ok: bool) -> None:
        if self._metrics:
            self._metrics.record_classification(latency, ok=ok)
