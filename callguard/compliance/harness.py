"""Evaluation harness — measure the risk scorer against labeled transcripts.

Run suites through Tier 1 only (fast, deterministic, good for CI) or through
the full two-tier scorer, then report accuracy metrics.

Usage:
    from callguard.compliance import EvaluationHarness
    from callguard.core import RiskScorer

    harness = EvaluationHarness()
    report = harness.run_patterns(RiskScorer(), my_suite)
    report.print_summary()
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from ..core.scorer import RiskScorer
from ..protocol import RiskAssessment
from .scenarios import LabeledTranscript, TranscriptSuite


@dataclass
class EvalResult:
    """Result of scoring a single labeled transcript."""

    case: LabeledTranscript
    flagged: bool  # Did the scorer call it a scam?
    correct: bool
    score: int = 0
    source: str = ""
    evidence: tuple[str, ...] = ()
    latency_ms: float = 0.0


@dataclass
class EvalReport:
    """Aggregate results from running a suite."""

    suite_name: str
    mode: str
    results: list[EvalResult] = field(default_factory=list)
    run_at: float = field(default_factory=time.time)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def correct(self) -> int:
        return sum(1 for r in self.results if r.correct)

    @property
    def accuracy(self) -> float:
        return self.correct / self.total if self.total else 0.0

    @property
    def true_positives(self) -> int:
        return sum(1 for r in self.results if r.case.expected_scam and r.flagged)

    @property
    def false_negatives(self) -> int:
        """Scams missed (most dangerous failure mode)."""
        return sum(1 for r in self.results if r.case.expected_scam and not r.flagged)

    @property
    def true_negatives(self) -> int:
        return sum(1 for r in self.results if not r.case.expected_scam and not r.flagged)

    @property
    def false_positives(self) -> int:
        """Legitimate calls flagged."""
        return sum(1 for r in self.results if not r.case.expected_scam and r.flagged)

    @property
    def precision(self) -> float:
        tp, fp = self.true_positives, self.false_positives
        return tp / (tp + fp) if (tp + fp) else 1.0

    @property
    def recall(self) -> float:
        tp, fn = self.true_positives, self.false_negatives
        return tp / (tp + fn) if (tp + fn) else 1.0

    @property
    def f1(self) -> float:
        p, r = self.precision, self.recall
        return 2 * p * r / (p + r) if (p + r) else 0.0

    def print_summary(self) -> None:
        print(f"\n{'='*60}")
        print(f"  EVAL ({self.mode}): {self.suite_name}")
        print(f"{'='*60}")
        print(f"  Total cases:     {self.total}")
        print(f"  Accuracy:        {self.accuracy:.1%}")
        print(f"  Precision:       {self.precision:.1%}")
        print(f"  Recall:          {self.recall:.1%}")
        print(f"  F1 Score:        {self.f1:.1%}")
        print(f"  False Negatives: {self.false_negatives}  <- missed scams")
        print(f"  False Positives: {self.false_positives}")

        for r in self.results:
            if r.correct:
                continue
            label = "MISSED" if r.case.expected_scam else "FALSE ALARM"
            print(f"    - {label} [{r.case.category}] {r.case.description} (score {r.score})")
            print(f"      Transcript: \"{r.case.transcript[:80]}...\"")

        print(f"{'='*60}\n")

    def to_dict(self) -> dict:
        return {
            "suite": self.suite_name,
            "mode": self.mode,
            "total": self.total,
            "accuracy": round(self.accuracy, 4),
            "precision": round(self.precision, 4),
            "recall": round(self.recall, 4),
            "f1": round(self.f1, 4),
            "true_positives": self.true_positives,
            "false_negatives": self.false_negatives,
            "true_negatives": self.true_negatives,
            "false_positives": self.false_positives,
        }


class EvaluationHarness:
    """Runs transcript suites through a scorer and produces eval reports."""

    def run_patterns(self, scorer: RiskScorer, suite: TranscriptSuite) -> EvalReport:
        """Tier 1 only. No network, so suitable for regression checks."""
        report = EvalReport(suite_name=suite.name, mode="pattern")
        for case in suite.cases:
            start = time.monotonic()
            assessment = scorer.assess_patterns(case.transcript)
            report.results.append(self._result(case, assessment, start))
        return report

    async def run(self, scorer: RiskScorer, suite: TranscriptSuite) -> EvalReport:
        """Full two-tier scoring, one case at a time."""
        report = EvalReport(suite_name=suite.name, mode="full")
        for case in suite.cases:
            start = time.monotonic()
            assessment = await scorer.assess(case.transcript)
            report.results.append(self._result(case, assessment, start))
        return report

    @staticmethod
    def _result(case: LabeledTranscript, assessment: RiskAssessment, start: float) -> EvalResult:
        flagged = assessment.alert or assessment.is_scam
        return EvalResult(
            case=case,
            flagged=flagged,
            correct=flagged == case.expected_scam,
            score=assessment.score,
            source=assessment.source.value,
            evidence=assessment.evidence,
            latency_ms=(time.monotonic() - start) * 1000,
        )
