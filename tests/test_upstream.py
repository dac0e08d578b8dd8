import aiohttp
import pytest

from callguard.config import VoiceAgentConfig
from callguard.core import upstream
from callguard.core.upstream import VoiceAgentConnector, fetch_signed_url
from callguard.errors import TransportError

CONFIG = VoiceAgentConfig(api_key="xi-test", agent_ids={"default": "agent_d", "female": "agent_f"})


class FakeResponse:
    def __init__(self, status: int, body: str):
        self.status = status
        self._body = body

    async def text(self) -> str:
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeHttp:
    def __init__(self, status: int = 200, body: str = '{"signed_url": "wss://peer/x?token=t"}', error=None):
        self.status = status
        self.body = body
        self.error = error
        self.requests = []

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if self.error:
            raise self.error
        return FakeResponse(self.status, self.body)


async def test_signed_url_exchange_sends_credentials_and_agent():
    http = FakeHttp()

    url = await fetch_signed_url(http, CONFIG, voice="female")

    assert url == "wss://peer/x?token=t"
    endpoint, kwargs = http.requests[0]
    assert endpoint == CONFIG.signed_url_endpoint
    assert kwargs["params"] == {"agent_id": "agent_f"}
    assert kwargs["headers"] == {"xi-api-key": "xi-test"}


async def test_unknown_voice_uses_default_agent():
    http = FakeHttp()
    await fetch_signed_url(http, CONFIG, voice="robot")
    assert http.requests[0][1]["params"] == {"agent_id": "agent_d"}


async def test_missing_credentials_fail_without_request():
    http = FakeHttp()
    with pytest.raises(TransportError, match="not configured"):
        await fetch_signed_url(http, VoiceAgentConfig(), voice="default")
    assert http.requests == []


async def test_service_error_message_is_surfaced():
    http = FakeHttp(status=401, body='{"detail": {"status": "invalid_api_key", "message": "Invalid API key"}}')
    with pytest.raises(TransportError, match=r"\(401\): Invalid API key"):
        await fetch_signed_url(http, CONFIG)


async def test_missing_signed_url_is_a_transport_error():
    with pytest.raises(TransportError, match="missing signed_url"):
        await fetch_signed_url(FakeHttp(body="{}"), CONFIG)


async def test_network_failure_is_a_transport_error():
    http = FakeHttp(error=aiohttp.ClientConnectionError("connection refused"))
    with pytest.raises(TransportError, match="connection refused"):
        await fetch_signed_url(http, CONFIG)


async def test_connector_opens_websocket_on_signed_url(monkeypatch):
    opened = []

    async def fake_connect(url, **kwargs):
        opened.append((url, kwargs))
        return "connection"

    monkeypatch.setattr(upstream, "connect", fake_connect)
    connector = VoiceAgentConnector(CONFIG, FakeHttp(), open_timeout=3)

    assert await connector.connect("default") == "connection"
    assert opened == [("wss://peer/x?token=t", {"open_timeout": 3})]


async def test_connector_wraps_handshake_failure(monkeypatch):
    async def fake_connect(url, **kwargs):
        raise OSError("unreachable")

    monkeypatch.setattr(upstream, "connect", fake_connect)
    connector = VoiceAgentConnector(CONFIG, FakeHttp())

    with pytest.raises(TransportError, match="unreachable"):
        await connector.connect()
