"""
CallGuard Scorer Evaluation — runs the labeled suites through the scorer.

Tier 1 always runs. If CLASSIFIER_API_KEY is set, the full two-tier scorer
runs as well so the two can be compared.

Run:
    python demo/demo_eval.py
"""

import asyncio
from pathlib import Path

from livekit.plugins import openai

from callguard import LLMClassifier, RiskScorer, Settings
from callguard.compliance import EvaluationHarness

from demo.scenarios import impersonation_suite, payment_suite

settings = Settings.from_env(Path(__file__).parent / ".env")
harness = EvaluationHarness()
suites = [impersonation_suite(), payment_suite()]

pattern_scorer = RiskScorer(settings.scoring)
reports = [harness.run_patterns(pattern_scorer, suite) for suite in suites]

if settings.classifier.configured:
    full_scorer = RiskScorer(
        settings.scoring,
        classifier=LLMClassifier(
            llm_instance=openai.LLM(
                base_url=settings.classifier.base_url,
                api_key=settings.classifier.api_key,
                model=settings.classifier.model,
            ),
            timeout=settings.classifier.timeout,
        ),
    )
    for suite in suites:
        reports.append(asyncio.run(harness.run(full_scorer, suite)))
else:
    print("CLASSIFIER_API_KEY not set, evaluating pattern matching only.\n")

for report in reports:
    report.print_summary()

print("="*60)
print("  AGGREGATE RESULTS")
print("="*60)
for report in reports:
    status = "PASS" if report.false_negatives == 0 else "FAIL"
    print(f"  [{status}] {report.suite_name} ({report.mode}): {report.accuracy:.0%} accuracy, "
          f"F1={report.f1:.2f}, "
          f"missed={report.false_negatives}, "
          f"false_alarms={report.false_positives}")
print("="*60)
