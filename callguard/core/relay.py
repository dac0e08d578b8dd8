"""Relay channel — one call's media relay between the caller leg and the voice agent.

State machine: CONNECTING → ACTIVE → DRAINING → CLOSED.

Transitions are driven only by connection-level events (peer close, local
close, call_end signal, transport error, buffer limit). Frame content never
changes state. Audio forwarding never waits on scoring: transcript turns hand
off to a ScoringDispatcher that runs in the background.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import websockets

from ..config import RelayConfig
from ..errors import BufferLimitExceeded, RelayError, TransportError
from ..protocol import (
    CallerFrameKind,
    Direction,
    PeerEventKind,
    RelayState,
    RiskAssessment,
    Speaker,
    WsMessage,
    WsMsgType,
    encode_caller_audio,
    encode_pong,
    encode_upstream_audio,
    parse_caller_frame,
    parse_peer_event,
)
from .buffer import StreamBuffer
from .dispatch import ScoringDispatcher
from .recorder import SessionRecorder
from .scorer import RiskScorer
from .session import CallSession

logger = logging.getLogger(__name__)

UpstreamFactory = Callable[[], Awaitable[Any]]

_SENTINEL = None


class RelayChannel:
    """Owns the session for one call and both of its connections.

    ``caller`` and the upstream connection are websocket-like objects: async
    iterables of frames with ``send`` and ``close`` coroutines.
    """

    def __init__(
        self,
        caller: Any,
        *,
        session: CallSession,
        scorer: RiskScorer,
        connect_upstream: UpstreamFactory,
        config: RelayConfig | None = None,
        metrics=None,
        audit=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._caller = caller
        self._session = session
        self._connect_upstream = connect_upstream
        self._config = config or RelayConfig()
        self._metrics = metrics
        self._audit = audit
        self._buffer = StreamBuffer(
            session.session_id,
            max_chunks=self._config.max_chunks,
            max_duration_ms=self._config.max_duration_ms,
            clock=clock,
        )
        self._recorder = SessionRecorder(self._buffer)
        self._dispatcher = ScoringDispatcher(
            session, scorer, on_assessment=self._on_assessment, metrics=metrics,
        )
        self._outbox: asyncio.Queue[str | None] = asyncio.Queue()
        self._upstream: Any = None
        self._state = RelayState.CONNECTING
        self._end_reason = ""

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def session(self) -> CallSession:
        return self._session

    @property
    def session_id(self) -> str:
        return self._session.session_id

    @property
    def buffer(self) -> StreamBuffer:
        return self._buffer

    @property
    def recorder(self) -> SessionRecorder:
        return self._recorder

    @property
    def dispatcher(self) -> ScoringDispatcher:
        return self._dispatcher

    @property
    def end_reason(self) -> str:
        return self._end_reason

    def stats(self) -> dict:
        return {"state": self._state.value, **self._recorder.stats()}

    async def run(self) -> RiskAssessment | None:
        """Relay until either side ends the call. Returns the last assessment.

        Raises TransportError if the handshake or the relay breaks.
        """
        if self._metrics:
            self._metrics.start_call(self.session_id)
        if self._audit:
            self._audit.log_session_start(self.session_id)

        try:
            self._upstream = await asyncio.wait_for(
                self._connect_upstream(), timeout=self._config.connect_timeout,
            )
        except asyncio.TimeoutError:
            await self._abort(TransportError("voice agent handshake timed out"))
        except TransportError as e:
            await self._abort(e)
        except (OSError, websockets.WebSocketException) as e:
            await self._abort(TransportError(f"voice agent handshake failed: {e}"))

        self._set_state(RelayState.ACTIVE)
        self._enqueue(WsMessage(WsMsgType.SESSION_STARTED, {"session_id": self.session_id}).to_json())
        sender = asyncio.create_task(self._send_outbox())
        pumps = {
            asyncio.create_task(self._pump_caller()),
            asyncio.create_task(self._pump_upstream()),
        }
        done, pending = await asyncio.wait(pumps, return_when=asyncio.FIRST_COMPLETED)

        # No result may land once draining starts.
        self._set_state(RelayState.DRAINING)
        self._dispatcher.stop()
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        error = self._collect_outcome(done)
        final = self._session.assessment
        if error:
            self._enqueue(self._error_message(error))
        self._enqueue(WsMessage(WsMsgType.SESSION_ENDED, {
            "session_id": self.session_id,
            "reason": self._end_reason,
            "assessment": final.to_dict() if final else None,
            "stats": self._recorder.stats(),
        }).to_json())
        self._outbox.put_nowait(_SENTINEL)
        try:
            await asyncio.wait_for(sender, timeout=self._config.drain_timeout)
        except asyncio.TimeoutError:
            logger.warning("Drain timed out for %s, dropping unsent frames", self.session_id)

        await self._close_connections()
        self._finish(final)

        if error:
            raise error
        return final

    # ── Pumps ──

    async def _pump_caller(self) -> str:
        try:
            async for raw in self._caller:
                if self._state != RelayState.ACTIVE:
                    break
                frame = parse_caller_frame(raw)
                if frame.kind == CallerFrameKind.AUDIO:
                    self._record(Direction.INBOUND, frame.audio)
                    try:
                        await self._upstream.send(encode_upstream_audio(frame.audio))
                    except websockets.ConnectionClosedOK:
                        logger.info("Voice agent closed %s", self.session_id)
                        return "agent_closed"
                elif frame.kind == CallerFrameKind.END:
                    logger.info("Caller ended %s", self.session_id)
                    return "caller_end"
                else:
                    logger.debug("Ignoring caller frame on %s", self.session_id)
        except websockets.ConnectionClosedOK:
            pass
        except websockets.ConnectionClosed as e:
            raise TransportError(f"relay connection lost: {e}", session_id=self.session_id) from e
        return "caller_closed"

    async def _pump_upstream(self) -> str:
        try:
            async for raw in self._upstream:
                if self._state != RelayState.ACTIVE:
                    break
                event = parse_peer_event(raw)
                if event.kind == PeerEventKind.AUDIO:
                    self._record(Direction.OUTBOUND, event.audio)
                    self._enqueue(encode_caller_audio(event.audio))
                elif event.kind == PeerEventKind.TRANSCRIPT:
                    self._add_turn(event.speaker, event.text)
                elif event.kind == PeerEventKind.PING:
                    await self._upstream.send(encode_pong(event.event_id))
                elif event.kind == PeerEventKind.END:
                    logger.info("Voice agent ended %s", self.session_id)
                    return "agent_end"
                else:
                    logger.debug("Ignoring peer event %r on %s", event.raw_type, self.session_id)
        except websockets.ConnectionClosedOK:
            pass
        except websockets.ConnectionClosed as e:
            raise TransportError(f"voice agent connection lost: {e}", session_id=self.session_id) from e
        return "agent_closed"

    async def _send_outbox(self) -> None:
        while True:
            data = await self._outbox.get()
            if data is _SENTINEL:
                return
            try:
                await self._caller.send(data)
            except websockets.ConnectionClosed:
                logger.debug("Caller gone for %s, dropping outbound frames", self.session_id)
                return

    # ── Session state ──

    def _record(self, direction: Direction, payload: str) -> None:
        self._buffer.append(direction, payload)
        if self._metrics:
            self._metrics.record_chunk(self.session_id, direction)

    def _add_turn(self, speaker: Speaker | None, text: str) -> None:
        turn = self._session.append_turn(speaker or Speaker.CALLER, text)
        if turn is None:
            return
        if self._metrics:
            self._metrics.record_turn(self.session_id, caller=turn.speaker == Speaker.CALLER)
        self._enqueue(WsMessage(WsMsgType.TRANSCRIPT, {
            "session_id": self.session_id,
            "speaker": turn.speaker.value,
            "text": turn.text,
            "index": turn.index,
        }).to_json())
        self._dispatcher.notify_turn()

    def _on_assessment(self, assessment: RiskAssessment) -> None:
        if self._state != RelayState.ACTIVE:
            return
        payload = {"session_id": self.session_id, **assessment.to_dict()}
        self._enqueue(WsMessage(WsMsgType.RISK_ASSESSMENT, payload).to_json())
        if self._audit:
            self._audit.log_assessment(self.session_id, assessment)

    def _enqueue(self, data: str) -> None:
        self._outbox.put_nowait(data)

    def _set_state(self, state: RelayState) -> None:
        if state != self._state:
            logger.debug("%s: %s -> %s", self.session_id, self._state.value, state.value)
            self._state = state

    def _collect_outcome(self, done: set[asyncio.Task]) -> RelayError | None:
        error: RelayError | None = None
        for task in done:
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is None:
                self._end_reason = self._end_reason or task.result()
            elif isinstance(exc, BufferLimitExceeded):
                logger.warning("Closing %s: %s", self.session_id, exc)
                self._end_reason = "limit"
            elif isinstance(exc, RelayError):
                error = exc
            else:
                error = TransportError(f"relay failed: {exc}", session_id=self.session_id)
                error.__cause__ = exc
        if error:
            error.session_id = self.session_id
            self._end_reason = "transport_error"
            logger.error("Relay failed for %s: %s", self.session_id, error)
            if self._audit:
                self._audit.log_transport_error(self.session_id, str(error))
        return error

    def _error_message(self, error: RelayError) -> str:
        return WsMessage(WsMsgType.ERROR, {
            "session_id": self.session_id,
            "error": type(error).__name__,
            "message": str(error),
        }).to_json()

    async def _abort(self, error: TransportError) -> None:
        """Handshake failed: go straight through DRAINING to CLOSED and raise."""
        error.session_id = self.session_id
        self._end_reason = "transport_error"
        logger.error("Relay setup failed for %s: %s", self.session_id, error)
        if self._audit:
            self._audit.log_transport_error(self.session_id, str(error))
        self._set_state(RelayState.DRAINING)
        self._dispatcher.stop()
        try:
            await self._caller.send(self._error_message(error))
        except websockets.ConnectionClosed:
            pass
        await self._close_connections()
        self._finish(None)
        raise error

    async def _close_connections(self) -> None:
        for conn in (self._upstream, self._caller):
            if conn is None:
                continue
            try:
                await conn.close()
            except websockets.ConnectionClosed:
                pass

    def _finish(self, final: RiskAssessment | None) -> None:
        if self._config.recording_dir:
            path = Path(self._config.recording_dir) / f"{self.session_id}.jsonl"
            try:
                self._recorder.export(path)
            except OSError:
                logger.exception("Failed to save recording for %s", self.session_id)
        logger.info(
            "Closed %s (%s): %s",
            self.session_id, self._end_reason or "closed", self._buffer.stats(),
        )
        if self._metrics:
            summary = self._metrics.end_call(self.session_id, reason=self._end_reason)
            if summary:
                logger.info("Call metrics for %s: %s", self.session_id, summary)
        if self._audit:
            self._audit.log_session_end(self.session_id, reason=self._end_reason, assessment=final)
        self._buffer.clear()
        self._session.close()
        self._set_state(RelayState.CLOSED)
