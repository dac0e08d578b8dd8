from .buffer import StreamBuffer
from .classifier import Classification, LLMClassifier, parse_classification
from .dispatch import ScoringDispatcher
from .metrics import CallMetrics, MetricsCollector
from .recorder import SessionRecorder, load_recording
from .relay import RelayChannel
from .scorer import PatternMatch, RiskScorer, render_transcript
from .session import CallSession, SessionRegistry
from .upstream import VoiceAgentConnector, fetch_signed_url
