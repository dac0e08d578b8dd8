"""Real-time metrics tracking for relayed calls."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from ..protocol import AssessmentSource, Direction, RiskAssessment


@dataclass
class CallMetrics:
    """Metrics for a single call."""
    session_id: str
    started_at: float = field(default_factory=time.time)
    ended_at: float | None = None
    inbound_chunks: int = 0
    outbound_chunks: int = 0
    caller_turns: int = 0
    agent_turns: int = 0
    assessments: int = 0
    degraded_assessments: int = 0
    alerts: int = 0
    max_score: int = 0
    end_reason: str = ""
    # Seconds from dispatch to applied assessment
    scoring_latencies: list[float] = field(default_factory=list)

    @property
    def duration(self) -> float:
        end = self.ended_at or time.time()
        return end - self.started_at

    @property
    def avg_scoring_latency(self) -> float:
        return sum(self.scoring_latencies) / len(self.scoring_latencies) if self.scoring_latencies else 0.0

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "duration": round(self.duration, 1),
            "inbound_chunks": self.inbound_chunks,
            "outbound_chunks": self.outbound_chunks,
            "caller_turns": self.caller_turns,
            "agent_turns": self.agent_turns,
            "assessments": self.assessments,
            "degraded_assessments": self.degraded_assessments,
            "alerts": self.alerts,
            "max_score": self.max_score,
            "end_reason": self.end_reason,
            "avg_scoring_latency_ms": round(self.avg_scoring_latency * 1000),
        }


class MetricsCollector:
    """Collects metrics across all calls. Safe for asyncio (single-threaded).

    Per-call records live only while the call is active. Ending a call folds
    it into process-wide totals and drops the record.
    """

    def __init__(self):
        self._calls: dict[str, CallMetrics] = {}
        self.completed_calls = 0
        self.total_assessments = 0
        self.total_alerts = 0
        self.end_reasons: dict[str, int] = {}
        self.classifier_calls = 0
        self.classifier_failures = 0
        self._classifier_latency_total = 0.0

    def start_call(self, session_id: str) -> None:
        self._calls[session_id] = CallMetrics(session_id=session_id)

    def end_call(self, session_id: str, reason: str = "") -> dict | None:
        """Close out a call and return its final summary."""
        m = self._calls.pop(session_id, None)
        if not m:
            return None
        m.ended_at = time.time()
        m.end_reason = reason
        self.completed_calls += 1
        self.total_assessments += m.assessments
        self.total_alerts += m.alerts
        key = reason or "closed"
        self.end_reasons[key] = self.end_reasons.get(key, 0) + 1
        return m.to_dict()

    def record_chunk(self, session_id: str, direction: Direction) -> None:
        m = self._calls.get(session_id)
        if not m:
            return
        if direction == Direction.INBOUND:
            m.inbound_chunks += 1
        else:
            m.outbound_chunks += 1

    def record_turn(self, session_id: str, *, caller: bool) -> None:
        m = self._calls.get(session_id)
        if not m:
            return
        if caller:
            m.caller_turns += 1
        else:
            m.agent_turns += 1

    def record_assessment(self, session_id: str, assessment: RiskAssessment, latency: float = 0.0) -> None:
        m = self._calls.get(session_id)
        if not m:
            return
        m.assessments += 1
        if assessment.source == AssessmentSource.PATTERN and not assessment.alert:
            m.degraded_assessments += 1
        if assessment.alert:
            m.alerts += 1
        m.max_score = max(m.max_score, assessment.score)
        if latency > 0:
            m.scoring_latencies.append(latency)

    def record_classification(self, latency: float, *, ok: bool) -> None:
        self.classifier_calls += 1
        if not ok:
            self.classifier_failures += 1
        self._classifier_latency_total += max(latency, 0.0)

    def get_call_metrics(self, session_id: str) -> dict | None:
        m = self._calls.get(session_id)
        return m.to_dict() if m else None

    def get_aggregate(self) -> dict:
        """Totals for finished calls plus live records for active ones."""
        calls = self.classifier_calls
        return {
            "active_calls": len(self._calls),
            "completed_calls": self.completed_calls,
            "total_assessments": self.total_assessments + sum(m.assessments for m in self._calls.values()),
            "total_alerts": self.total_alerts + sum(m.alerts for m in self._calls.values()),
            "end_reasons": dict(self.end_reasons),
            "classifier_calls": calls,
            "classifier_failures": self.classifier_failures,
            "avg_classifier_latency_ms": round(self._classifier_latency_total / calls * 1000) if calls else 0,
            "calls": {sid: m.to_dict() for sid, m in self._calls.items()},
        }
