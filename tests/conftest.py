from __future__ import annotations

import asyncio
import json

import pytest
import websockets

from callguard.config import ScoringConfig
from callguard.core.classifier import Classification
from callguard.errors import ClassificationUnavailable

_STOP = object()


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms / 1000


class FakeConnection:
    """Websocket stand-in: frames are fed through a queue, sends are recorded."""

    def __init__(self):
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list = []
        self.closed = False

    def feed(self, frame) -> None:
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self.incoming.put_nowait(frame)

    def hang_up(self) -> None:
        self.incoming.put_nowait(_STOP)

    def fail(self, exc: BaseException) -> None:
        self.incoming.put_nowait(exc)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.incoming.get()
        if item is _STOP:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def send(self, data) -> None:
        if self.closed:
            raise websockets.ConnectionClosedOK(None, None)
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True

    def messages(self, msg_type: str | None = None) -> list[dict]:
        decoded = [json.loads(s) for s in self.sent if isinstance(s, str)]
        if msg_type is None:
            return decoded
        return [m for m in decoded if m.get("type") == msg_type]


class FakeClassifier:
    def __init__(self, score: float = 0, keywords=(), *, error: Exception | None = None):
        self.score = score
        self.keywords = tuple(keywords)
        self.error = error
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def classify(self, transcript, indicators):
        self.calls.append(transcript)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return Classification(score=self.score, keywords=self.keywords)


class FakeLLM:
    """Mimics ``livekit.agents.llm.LLM.chat``: returns an async stream of text pieces."""

    def __init__(self, *pieces: str, delay: float = 0.0, error: Exception | None = None):
        self.pieces = pieces
        self.delay = delay
        self.error = error
        self.contexts = []

    def chat(self, *, chat_ctx, **kwargs):
        self.contexts.append(chat_ctx)
        return self._stream()

    async def _stream(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        for piece in self.pieces:
            yield piece


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def small_config():
    return ScoringConfig(indicators=("gift card", "wire transfer", "verify your identity", "irs"))


@pytest.fixture
def unavailable_classifier():
    return FakeClassifier(error=ClassificationUnavailable("down"))
