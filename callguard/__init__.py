# Protocol — shared types
from .protocol import (
    AssessmentSource,
    AudioChunk,
    Direction,
    RelayState,
    RiskAssessment,
    Speaker,
    TranscriptTurn,
)

# Errors
from .errors import (
    BufferLimitExceeded,
    ClassificationError,
    ClassificationUnavailable,
    MalformedResponse,
    RelayError,
    TransportError,
)

# Configuration
from .config import (
    DEFAULT_INDICATORS,
    ClassifierConfig,
    RelayConfig,
    ScoringConfig,
    Settings,
    VoiceAgentConfig,
)

# Core — relay and scoring
from .core import (
    CallMetrics,
    CallSession,
    LLMClassifier,
    MetricsCollector,
    RelayChannel,
    RiskScorer,
    ScoringDispatcher,
    SessionRecorder,
    SessionRegistry,
    StreamBuffer,
    VoiceAgentConnector,
    fetch_signed_url,
    load_recording,
)
from .server import RelayServer

# Store — Supabase-backed scoring profiles (supabase is imported lazily)
from .store import SupabaseStore

# Compliance — audit and evaluation
from .compliance import (
    AuditLogger,
    EvalReport,
    EvaluationHarness,
    LabeledTranscript,
    TranscriptSuite,
    load_suite,
)

__all__ = [
    # Core
    "RelayChannel",
    "RelayServer",
    "StreamBuffer",
    "SessionRecorder",
    "load_recording",
    "RiskScorer",
    "LLMClassifier",
    "ScoringDispatcher",
    "CallSession",
    "SessionRegistry",
    "MetricsCollector",
    "CallMetrics",
    "VoiceAgentConnector",
    "fetch_signed_url",
    # Configuration
    "DEFAULT_INDICATORS",
    "ScoringConfig",
    "RelayConfig",
    "VoiceAgentConfig",
    "ClassifierConfig",
    "Settings",
    # Errors
    "RelayError",
    "TransportError",
    "BufferLimitExceeded",
    "ClassificationError",
    "ClassificationUnavailable",
    "MalformedResponse",
    # Compliance & Evaluation
    "AuditLogger",
    "EvaluationHarness",
    "EvalReport",
    "LabeledTranscript",
    "TranscriptSuite",
    "load_suite",
    # Store (optional)
    "SupabaseStore",
    # Protocol
    "AudioChunk",
    "TranscriptTurn",
    "RiskAssessment",
    "AssessmentSource",
    "Direction",
    "Speaker",
    "RelayState",
]
