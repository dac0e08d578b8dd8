"""Per-call session state and the registry that makes it queryable."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field

from ..protocol import RiskAssessment, Speaker, TranscriptTurn


def new_session_id() -> str:
    return f"call_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class CallSession:
    """Tracks the transcript and latest assessment for a single call."""
    session_id: str = field(default_factory=new_session_id)
    created_at: float = field(default_factory=time.time)
    closed: bool = False
    turns: list[TranscriptTurn] = field(default_factory=list)
    assessment: RiskAssessment | None = None
    evaluations: int = 0

    def append_turn(self, speaker: Speaker, text: str) -> TranscriptTurn | None:
        if self.closed:
            return None
        turn = TranscriptTurn(speaker=Speaker(speaker), text=text, index=len(self.turns))
        self.turns.append(turn)
        return turn

    def transcript(self) -> tuple[TranscriptTurn, ...]:
        return tuple(self.turns)

    def transcript_text(self) -> str:
        return "\n".join(turn.render() for turn in self.turns)

    def apply_assessment(self, assessment: RiskAssessment) -> bool:
        """Keep the latest assessment. Refused once the session is closed."""
        if self.closed:
            return False
        self.assessment = assessment
        self.evaluations += 1
        return True

    def close(self) -> None:
        self.closed = True
        self.turns.clear()
        self.assessment = None

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "state": "closed" if self.closed else "active",
            "turns": len(self.turns),
            "evaluations": self.evaluations,
            "assessment": self.assessment.to_dict() if self.assessment else None,
            "duration": round(time.time() - self.created_at, 1),
        }


class SessionRegistry:
    """Live sessions by id. Closed sessions are forgotten immediately."""

    def __init__(self):
        self._sessions: dict[str, CallSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def open(self, session_id: str = "") -> CallSession:
        session = CallSession(session_id=session_id) if session_id else CallSession()
        if session.session_id in self._sessions:
            raise ValueError(f"session {session.session_id} is already active")
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> CallSession | None:
        return self._sessions.get(session_id)

    def latest_assessment(self, session_id: str) -> RiskAssessment | None:
        session = self._sessions.get(session_id)
        return session.assessment if session else None

    def close(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session:
            session.close()

    def get_all(self) -> dict[str, dict]:
        return {sid: s.to_dict() for sid, s in self._sessions.items()}
