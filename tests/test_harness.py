import json

from callguard.compliance import EvaluationHarness, LabeledTranscript, TranscriptSuite, load_suite
from callguard.core.scorer import RiskScorer

from conftest import FakeClassifier

SUITE = TranscriptSuite(
    name="mini",
    cases=[
        LabeledTranscript("Caller: the irs wants a wire transfer and a gift card", True, "government"),
        LabeledTranscript("Caller: pay me with a gift card", True, "payment"),
        LabeledTranscript("Caller: your prescription is ready", False, "pharmacy"),
    ],
)


def test_pattern_run_reports_missed_scams(small_config):
    report = EvaluationHarness().run_patterns(RiskScorer(small_config), SUITE)

    assert report.mode == "pattern"
    assert report.total == 3
    assert report.true_positives == 1
    assert report.false_negatives == 1
    assert report.true_negatives == 1
    assert report.false_positives == 0
    assert report.precision == 1.0
    assert report.recall == 0.5


async def test_full_run_uses_classifier(small_config):
    scorer = RiskScorer(small_config, classifier=FakeClassifier(score=75, keywords=["payment"]))

    report = await EvaluationHarness().run(scorer, SUITE)

    assert report.mode == "full"
    assert report.false_negatives == 0
    # Classifier says 75 for every transcript, so the pharmacy call is a false alarm.
    assert report.false_positives == 1
    assert report.to_dict()["accuracy"] == round(2 / 3, 4)


def test_load_suite_from_json(tmp_path):
    path = tmp_path / "suite.json"
    path.write_text(json.dumps({
        "name": "file suite",
        "cases": [{"transcript": "Caller: hi", "expected_scam": False}],
    }))

    suite = load_suite(path)
    assert suite.name == "file suite"
    assert suite.cases[0] == LabeledTranscript("Caller: hi", False)
