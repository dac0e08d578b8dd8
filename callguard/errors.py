"""Error taxonomy for the relay and scoring paths.

Only relay errors reach the caller-facing layer. Classification errors are
recovered inside the scorer and show up as ``source=pattern`` on the
assessment.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base for failures that end a call session."""

    def __init__(self, message: str, *, session_id: str = ""):
        super().__init__(message)
        self.session_id = session_id


class TransportError(RelayError):
    """Connection upgrade or media relay failure. Never retried mid-call."""


class BufferLimitExceeded(RelayError):
    """A stream buffer reached its chunk or duration cap."""


class ClassificationError(Exception):
    """Base for Tier-2 failures."""


class ClassificationUnavailable(ClassificationError):
    """Classifier unreachable, unconfigured or timed out."""


class MalformedResponse(ClassificationError):
    """Classifier replied with something other than the expected JSON shape."""

    def __init__(self, message: str, *, raw: str = ""):
        super().__init__(message)
        self.raw = raw
