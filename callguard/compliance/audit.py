"""Structured audit logging for call screening.

Every lifecycle and scoring event of a call gets an immutable, timestamped
entry: which session, what happened, the score and evidence at that moment.

Writes to append-only JSONL files suitable for later review.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path

from ..protocol import RiskAssessment


@dataclass(frozen=True)
class AuditEntry:
    """Immutable audit record for a single event."""

    timestamp: float
    session_id: str
    event_type: str  # session_start, assessment, transport_error, session_end
    score: int = 0
    alert: bool = False
    source: str = ""
    evidence: list[str] = field(default_factory=list)
    detail: str = ""


class AuditLogger:
    """Append-only audit logger writing JSONL.

    Usage:
        audit = AuditLogger("audit/calls.jsonl")
        audit.start()
        audit.log_assessment(session_id, assessment)
        audit.stop()
    """

    def __init__(self, output_path: str | Path):
        self._path = Path(output_path)
        self._file = None
        self._count = 0

    @property
    def entry_count(self) -> int:
        return self._count

    def start(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self._path, "a")  # Append mode, never overwrite
        self._write(AuditEntry(
            timestamp=time.time(),
            session_id="",
            event_type="audit_start",
            detail="Audit log opened",
        ))

    def stop(self) -> None:
        if self._file:
            self._write(AuditEntry(
                timestamp=time.time(),
                session_id="",
                event_type="audit_end",
                detail=f"Audit log closed. {self._count} entries recorded.",
            ))
            self._file.close()
            self._file = None

    def log_session_start(self, session_id: str) -> None:
        self._write(AuditEntry(timestamp=time.time(), session_id=session_id, event_type="session_start"))

    def log_assessment(self, session_id: str, assessment: RiskAssessment) -> None:
        self._write(AuditEntry(
            timestamp=assessment.assessed_at,
            session_id=session_id,
            event_type="assessment",
            score=assessment.score,
            alert=assessment.alert,
            source=assessment.source.value,
            evidence=list(assessment.evidence),
        ))

    def log_transport_error(self, session_id: str, message: str) -> None:
        self._write(AuditEntry(
            timestamp=time.time(),
            session_id=session_id,
            event_type="transport_error",
            detail=message,
        ))

    def log_session_end(
        self,
        session_id: str,
        *,
        reason: str = "",
        assessment: RiskAssessment | None = None,
    ) -> None:
        self._write(AuditEntry(
            timestamp=time.time(),
            session_id=session_id,
            event_type="session_end",
            score=assessment.score if assessment else 0,
            alert=assessment.alert if assessment else False,
            source=assessment.source.value if assessment else "",
            evidence=list(assessment.evidence) if assessment else [],
            detail=reason,
        ))

    def _write(self, entry: AuditEntry) -> None:
        if not self._file:
            return
        self._file.write(json.dumps(asdict(entry)) + "\n")
        self._file.flush()
        self._count += 1


def load_audit(path: str | Path) -> list[dict]:
    """Load audit entries as dicts, oldest first."""
    entries = []
    with open(path) as f:
        for line in f:
            line = line.strip()
            if line:
                entries.append(json.loads(line))
    return entries
