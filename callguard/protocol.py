from __future__ import annotations

import base64
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class Speaker(str, Enum):
    CALLER = "caller"
    AGENT = "agent"


class RelayState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    DRAINING = "draining"
    CLOSED = "closed"


class AssessmentSource(str, Enum):
    PATTERN = "pattern"
    PATTERN_AI = "pattern+ai"


@dataclass(frozen=True)
class AudioChunk:
    direction: Direction
    payload: str
    offset_ms: int
    seq: int = 0


@dataclass(frozen=True)
class TranscriptTurn:
    speaker: Speaker
    text: str
    index: int

    def render(self) -> str:
        label = "Caller" if self.speaker == Speaker.CALLER else "Agent"
        return f"{label}: {self.text}"


@dataclass(frozen=True)
class RiskAssessment:
    score: int
    evidence: tuple[str, ...] = ()
    alert: bool = False
    source: AssessmentSource = AssessmentSource.PATTERN
    scam_threshold: int = 40
    assessed_at: float = field(default_factory=time.time)

    @property
    def is_scam(self) -> bool:
        return self.score > self.scam_threshold

    @property
    def confidence(self) -> float:
        return min(self.score / 100, 1.0)

    @property
    def degraded(self) -> bool:
        return self.source == AssessmentSource.PATTERN

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "evidence": list(self.evidence),
            "alert": self.alert,
            "source": self.source.value,
            "is_scam": self.is_scam,
            "confidence": round(self.confidence, 2),
            "assessed_at": self.assessed_at,
        }


EMPTY_ASSESSMENT = RiskAssessment(score=0)


# ── Caller leg frames ──


class CallerFrameKind(str, Enum):
    AUDIO = "audio"
    END = "end"
    IGNORED = "ignored"


@dataclass(frozen=True)
class CallerFrame:
    kind: CallerFrameKind
    audio: str = ""


def parse_caller_frame(raw: str | bytes) -> CallerFrame:
    """Decode one frame from the caller leg.

    Binary frames are raw PCM and get base64-encoded; text frames are JSON.
    """
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return CallerFrame(CallerFrameKind.AUDIO, base64.b64encode(bytes(raw)).decode("ascii"))

    data = _load_json_object(raw)
    if data is None:
        return CallerFrame(CallerFrameKind.IGNORED)

    msg_type = data.get("type", "")
    if msg_type == "audio_input" and isinstance(data.get("audio"), str):
        return CallerFrame(CallerFrameKind.AUDIO, data["audio"])
    if isinstance(data.get("user_audio_chunk"), str):
        return CallerFrame(CallerFrameKind.AUDIO, data["user_audio_chunk"])
    if msg_type in ("call_end", "conversation_end_event"):
        return CallerFrame(CallerFrameKind.END)
    return CallerFrame(CallerFrameKind.IGNORED)


# ── Voice-agent peer events ──


class PeerEventKind(str, Enum):
    AUDIO = "audio"
    TRANSCRIPT = "transcript"
    PING = "ping"
    END = "end"
    IGNORED = "ignored"


@dataclass(frozen=True)
class PeerEvent:
    kind: PeerEventKind
    audio: str = ""
    speaker: Speaker | None = None
    text: str = ""
    event_id: Any = None
    raw_type: str = ""


def parse_peer_event(raw: str | bytes) -> PeerEvent:
    """Decode one event from the voice-agent peer.

    The peer schema is versioned by the service; anything unrecognised comes
    back as IGNORED rather than raising.
    """
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return PeerEvent(PeerEventKind.AUDIO, audio=base64.b64encode(bytes(raw)).decode("ascii"))

    data = _load_json_object(raw)
    if data is None:
        return PeerEvent(PeerEventKind.IGNORED)

    msg_type = str(data.get("type", ""))

    if msg_type == "audio_output":
        audio = _first_str(data.get("audio"), data.get("audio_output"), data.get("data"))
        if audio:
            return PeerEvent(PeerEventKind.AUDIO, audio=audio, raw_type=msg_type)

    if msg_type == "audio":
        event = data.get("audio_event") or {}
        audio = _first_str(event.get("audio_base_64"), data.get("audio"))
        if audio:
            return PeerEvent(PeerEventKind.AUDIO, audio=audio, raw_type=msg_type)

    if msg_type == "user_transcript":
        event = data.get("user_transcription_event") or {}
        text = _first_str(event.get("user_transcript"), data.get("text"))
        if text:
            return PeerEvent(PeerEventKind.TRANSCRIPT, speaker=Speaker.CALLER, text=text, raw_type=msg_type)

    if msg_type == "agent_response":
        event = data.get("agent_response_event") or {}
        text = _first_str(event.get("agent_response"), data.get("text"))
        if text:
            return PeerEvent(PeerEventKind.TRANSCRIPT, speaker=Speaker.AGENT, text=text, raw_type=msg_type)

    if msg_type == "transcript":
        text = _first_str(data.get("text"))
        try:
            speaker = Speaker(str(data.get("speaker", "caller")).lower())
        except ValueError:
            speaker = None
        if text and speaker:
            return PeerEvent(PeerEventKind.TRANSCRIPT, speaker=speaker, text=text, raw_type=msg_type)

    if msg_type == "ping":
        event = data.get("ping_event") or {}
        return PeerEvent(PeerEventKind.PING, event_id=event.get("event_id", data.get("event_id")), raw_type=msg_type)

    if msg_type in ("call_end", "conversation_end_event"):
        return PeerEvent(PeerEventKind.END, raw_type=msg_type)

    return PeerEvent(PeerEventKind.IGNORED, raw_type=msg_type)


def encode_upstream_audio(audio: str) -> str:
    return json.dumps({"user_audio_chunk": audio})


def encode_pong(event_id: Any) -> str:
    return json.dumps({"type": "pong", "event_id": event_id})


def encode_caller_audio(audio: str) -> str:
    return json.dumps({"type": "audio_output", "audio": audio})


# ── Caller-facing control messages ──


class WsMsgType(str, Enum):
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"
    TRANSCRIPT = "transcript"
    RISK_ASSESSMENT = "risk_assessment"
    ERROR = "error"


@dataclass
class WsMessage:
    type: WsMsgType
    payload: dict[str, Any]
    ts: float = field(default_factory=time.time)

    def to_json(self) -> str:
        return json.dumps({"type": self.type.value, "payload": self.payload, "ts": self.ts})

    @staticmethod
    def from_json(raw: str) -> WsMessage:
        data = json.loads(raw)
        return WsMessage(
            type=WsMsgType(data["type"]),
            payload=data["payload"],
            ts=data.get("ts", time.time()),
        )


def _load_json_object(raw: str) -> dict[str, Any] | None:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    return data if isinstance(data, dict) else None


def _first_str(*values: Any) -> str:
    for value in values:
        if isinstance(value, str) and value:
            return value
        if isinstance(value, dict):
            nested = value.get("data") or value.get("audio_base_64")
            if isinstance(nested, str) and nested:
                return nested
    return ""
