import asyncio
import json

import pytest
import websockets

from callguard.compliance import AuditLogger, load_audit
from callguard.config import RelayConfig
from callguard.core.metrics import MetricsCollector
from callguard.core.relay import RelayChannel
from callguard.core.scorer import RiskScorer
from callguard.core.session import CallSession
from callguard.errors import TransportError
from callguard.protocol import RelayState

from conftest import FakeClassifier, FakeConnection, wait_until

SCAM_TURN = {
    "type": "user_transcript",
    "user_transcription_event": {"user_transcript": "The IRS needs a wire transfer or a gift card"},
}


def _relay(caller, upstream, scorer, **kwargs):
    async def connect():
        return upstream

    return RelayChannel(
        caller,
        session=CallSession(session_id="call_t"),
        scorer=scorer,
        connect_upstream=connect,
        **kwargs,
    )


@pytest.fixture
def caller():
    return FakeConnection()


@pytest.fixture
def upstream():
    return FakeConnection()


@pytest.fixture
def scorer(small_config):
    return RiskScorer(small_config)


async def _start(relay):
    task = asyncio.create_task(relay.run())
    await wait_until(lambda: relay.state == RelayState.ACTIVE)
    return task


async def test_audio_flows_both_ways_until_caller_ends(caller, upstream, scorer):
    relay = _relay(caller, upstream, scorer)
    task = await _start(relay)

    caller.feed({"type": "audio_input", "audio": "QUFB"})
    await wait_until(lambda: upstream.sent)
    upstream.feed({"type": "audio", "audio_event": {"audio_base_64": "QkJC"}})
    await wait_until(lambda: caller.messages("audio_output"))
    caller.feed({"type": "call_end"})

    final = await task

    assert final is None
    assert json.loads(upstream.sent[0]) == {"user_audio_chunk": "QUFB"}
    assert caller.messages("audio_output")[0]["audio"] == "QkJC"
    assert relay.state == RelayState.CLOSED
    assert relay.end_reason == "caller_end"
    assert caller.closed and upstream.closed
    assert relay.session.closed
    assert len(relay.buffer) == 0

    kinds = [m["type"] for m in caller.messages()]
    assert kinds[0] == "session_started"
    assert kinds[-1] == "session_ended"
    ended = caller.messages("session_ended")[0]["payload"]
    assert ended["reason"] == "caller_end"
    assert ended["stats"]["inbound_count"] == 1
    assert ended["stats"]["outbound_count"] == 1


async def test_transcript_turns_are_scored_and_pushed(caller, upstream, scorer):
    relay = _relay(caller, upstream, scorer)
    task = await _start(relay)

    upstream.feed(SCAM_TURN)
    await wait_until(lambda: caller.messages("risk_assessment"))
    upstream.hang_up()
    final = await task

    assert final.score == 55
    assert final.alert is True
    pushed = caller.messages("risk_assessment")[0]["payload"]
    assert pushed["score"] == 55
    assert pushed["session_id"] == "call_t"
    assert caller.messages("transcript")[0]["payload"]["speaker"] == "caller"
    assert caller.messages("session_ended")[0]["payload"]["assessment"]["score"] == 55
    assert relay.end_reason == "agent_closed"


async def test_agent_pings_are_answered(caller, upstream, scorer):
    relay = _relay(caller, upstream, scorer)
    task = await _start(relay)

    upstream.feed({"type": "ping", "ping_event": {"event_id": 42}})
    await wait_until(lambda: upstream.sent)
    upstream.feed({"type": "conversation_end_event"})
    await task

    assert json.loads(upstream.sent[0]) == {"type": "pong", "event_id": 42}
    assert relay.end_reason == "agent_end"


async def test_unknown_frames_do_not_change_state(caller, upstream, scorer):
    relay = _relay(caller, upstream, scorer)
    task = await _start(relay)

    upstream.feed({"type": "vad_score", "vad_score_event": {"vad_score": 0.9}})
    caller.feed("garbage")
    await asyncio.sleep(0.01)
    assert relay.state == RelayState.ACTIVE

    caller.hang_up()
    await task
    assert relay.end_reason == "caller_closed"


async def test_handshake_failure_raises_transport_error(caller, scorer):
    async def connect():
        raise TransportError("signed URL request failed (401): invalid key")

    relay = RelayChannel(
        caller, session=CallSession(session_id="call_t"), scorer=scorer, connect_upstream=connect,
    )

    with pytest.raises(TransportError) as exc_info:
        await relay.run()

    assert exc_info.value.session_id == "call_t"
    assert relay.state == RelayState.CLOSED
    assert relay.end_reason == "transport_error"
    assert caller.messages("error")[0]["payload"]["error"] == "TransportError"
    assert caller.closed


async def test_handshake_timeout_raises_transport_error(caller, scorer):
    async def connect():
        await asyncio.sleep(10)

    relay = RelayChannel(
        caller,
        session=CallSession(session_id="call_t"),
        scorer=scorer,
        connect_upstream=connect,
        config=RelayConfig(connect_timeout=0.01),
    )

    with pytest.raises(TransportError, match="timed out"):
        await relay.run()
    assert relay.state == RelayState.CLOSED


async def test_upstream_loss_is_a_transport_error(caller, upstream, scorer):
    relay = _relay(caller, upstream, scorer)
    task = await _start(relay)

    upstream.fail(websockets.ConnectionClosedError(None, None))

    with pytest.raises(TransportError):
        await task
    assert relay.state == RelayState.CLOSED
    assert relay.end_reason == "transport_error"
    assert caller.messages("error")
    assert caller.messages("session_ended")[0]["payload"]["reason"] == "transport_error"


async def test_clean_caller_close_is_not_an_error(caller, upstream, scorer):
    relay = _relay(caller, upstream, scorer)
    task = await _start(relay)

    caller.fail(websockets.ConnectionClosedOK(None, None))

    assert await task is None
    assert relay.end_reason == "caller_closed"


async def test_buffer_limit_ends_session_without_dropping(caller, upstream, scorer):
    relay = _relay(caller, upstream, scorer, config=RelayConfig(max_chunks=2))
    task = await _start(relay)

    for _ in range(3):
        caller.feed({"type": "audio_input", "audio": "QUFB"})
    await task

    assert relay.end_reason == "limit"
    assert len(upstream.sent) == 2
    assert caller.messages("session_ended")[0]["payload"]["stats"]["total_count"] == 2


async def test_late_assessment_is_discarded_after_close(caller, upstream, small_config):
    classifier = FakeClassifier(score=90, keywords=["pressure"])
    classifier.gate = asyncio.Event()
    relay = _relay(caller, upstream, RiskScorer(small_config, classifier=classifier))
    task = await _start(relay)

    upstream.feed({"type": "user_transcript", "user_transcription_event": {"user_transcript": "hello"}})
    await wait_until(lambda: classifier.calls)
    caller.feed({"type": "call_end"})
    final = await task
    classifier.gate.set()
    await asyncio.sleep(0.01)

    assert final is None
    assert relay.session.assessment is None
    assert caller.messages("risk_assessment") == []


async def test_recording_metrics_and_audit_on_close(tmp_path, caller, upstream, scorer):
    metrics = MetricsCollector()
    audit = AuditLogger(tmp_path / "audit.jsonl")
    audit.start()
    relay = _relay(
        caller, upstream, scorer,
        config=RelayConfig(recording_dir=str(tmp_path / "recordings")),
        metrics=metrics,
        audit=audit,
    )
    task = await _start(relay)

    caller.feed({"type": "audio_input", "audio": "QUFB"})
    upstream.feed(SCAM_TURN)
    await wait_until(lambda: caller.messages("risk_assessment"))
    call = metrics.get_call_metrics("call_t")
    assert call["inbound_chunks"] == 1
    assert call["caller_turns"] == 1
    assert call["alerts"] == 1

    caller.feed({"type": "call_end"})
    await task
    audit.stop()

    assert (tmp_path / "recordings" / "call_t.jsonl").exists()

    # The per-call record is released once folded into the totals.
    assert metrics.get_call_metrics("call_t") is None
    totals = metrics.get_aggregate()
    assert totals["calls"] == {}
    assert totals["completed_calls"] == 1
    assert totals["total_alerts"] == 1
    assert totals["end_reasons"] == {"caller_end": 1}

    events = [e["event_type"] for e in load_audit(tmp_path / "audit.jsonl")]
    assert events == ["audit_start", "session_start", "assessment", "session_end", "audit_end"]


async def test_audio_keeps_flowing_while_scoring_is_in_flight(caller, upstream, small_config):
    classifier = FakeClassifier(score=30)
    classifier.gate = asyncio.Event()
    relay = _relay(caller, upstream, RiskScorer(small_config, classifier=classifier))
    task = await _start(relay)

    upstream.feed({"type": "user_transcript", "user_transcription_event": {"user_transcript": "hello"}})
    await wait_until(lambda: classifier.calls)

    for _ in range(3):
        caller.feed({"type": "audio_input", "audio": "QUFB"})
        upstream.feed({"type": "audio_output", "audio": "QkJC"})
    await wait_until(lambda: len(upstream.sent) == 3 and len(caller.messages("audio_output")) == 3)
    assert relay.dispatcher.in_flight
    assert caller.messages("risk_assessment") == []

    classifier.gate.set()
    await wait_until(lambda: caller.messages("risk_assessment"))
    caller.feed({"type": "call_end"})
    final = await task

    assert final.score == 30
    assert relay.end_reason == "caller_end"


async def test_agent_closing_during_send_ends_as_agent_closed(caller, upstream, scorer):
    relay = _relay(caller, upstream, scorer)
    task = await _start(relay)

    upstream.closed = True
    caller.feed({"type": "audio_input", "audio": "QUFB"})

    assert await task is None
    assert relay.end_reason == "agent_closed"
    assert caller.messages("error") == []
