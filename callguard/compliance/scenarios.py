"""Labeled transcripts for evaluating the risk scorer.

Domain test data lives in demo/scenarios.py.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class LabeledTranscript:
    """A call transcript with its expected label."""

    transcript: str
    expected_scam: bool
    category: str = ""
    description: str = ""


@dataclass
class TranscriptSuite:
    """A collection of labeled transcripts."""

    name: str
    cases: list[LabeledTranscript] = field(default_factory=list)


def load_suite(path: str | Path) -> TranscriptSuite:
    """Load a suite from a JSON file."""
    data = json.loads(Path(path).read_text())
    cases = [
        LabeledTranscript(
            transcript=c["transcript"],
            expected_scam=c["expected_scam"],
            category=c.get("category", ""),
            description=c.get("description", ""),
        )
        for c in data["cases"]
    ]
    return TranscriptSuite(name=data["name"], cases=cases)
