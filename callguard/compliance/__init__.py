from .audit import AuditEntry, AuditLogger, load_audit
from .harness import EvalReport, EvalResult, EvaluationHarness
from .scenarios import LabeledTranscript, TranscriptSuite, load_suite
