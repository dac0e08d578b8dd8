"""Caller-facing WebSocket server, one relay channel per connection.

The same port answers plain HTTP GETs for polling:
    /health, /metrics, /sessions/<session_id>
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import parse_qs, urlsplit

import websockets
from websockets.asyncio.server import Server, ServerConnection
from websockets.http11 import Request, Response

from .config import RelayConfig
from .core.metrics import MetricsCollector
from .core.relay import RelayChannel
from .core.scorer import RiskScorer
from .core.session import SessionRegistry
from .errors import TransportError

logger = logging.getLogger(__name__)

RELAY_PATH = "/relay"


def _json_response(status: int, reason: str, body: dict) -> Response:
    return Response(
        status,
        reason,
        websockets.Headers({"Content-Type": "application/json"}),
        json.dumps(body).encode(),
    )


class RelayServer:
    def __init__(
        self,
        *,
        scorer: RiskScorer,
        connect_upstream: Callable[[str], Awaitable[Any]],
        config: RelayConfig | None = None,
        host: str = "0.0.0.0",
        port: int = 3001,
        registry: SessionRegistry | None = None,
        metrics: MetricsCollector | None = None,
        audit=None,
    ):
        self._scorer = scorer
        self._connect_upstream = connect_upstream
        self._config = config or RelayConfig()
        self._host = host
        self._port = port
        self._registry = registry or SessionRegistry()
        self._metrics = metrics or MetricsCollector()
        self._audit = audit
        self._relays: dict[str, RelayChannel] = {}
        self._server: Server | None = None

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    async def start(self) -> None:
        self._server = await websockets.serve(
            self._handle_connection,
            self._host,
            self._port,
            process_request=self._route_http,
        )
        logger.info("Relay WebSocket listening on ws://%s:%d%s", self._host, self._port, RELAY_PATH)

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def serve_forever(self) -> None:
        await self.start()
        await self._server.serve_forever()

    def _route_http(self, connection: ServerConnection, request: Request) -> Response | None:
        path = urlsplit(request.path).path.rstrip("/") or "/"
        if path == RELAY_PATH:
            return None
        if path == "/health":
            return _json_response(200, "OK", {"status": "ok", "active_sessions": len(self._registry)})
        if path == "/metrics":
            return _json_response(200, "OK", self._metrics.get_aggregate())
        if path.startswith("/sessions/"):
            return self._session_response(path.removeprefix("/sessions/"))
        return _json_response(404, "Not Found", {"error": "not found"})

    def _session_response(self, session_id: str) -> Response:
        session = self._registry.get(session_id)
        if session is None:
            return _json_response(404, "Not Found", {"error": "session not found"})
        assessment = session.assessment
        relay = self._relays.get(session_id)
        return _json_response(200, "OK", {
            "session_id": session_id,
            "assessment": assessment.to_dict() if assessment else None,
            "stats": relay.stats() if relay else None,
        })

    async def _handle_connection(self, ws: ServerConnection) -> None:
        query = parse_qs(urlsplit(ws.request.path).query)
        session_id = (
            _first(query, "session_id")
            or _first(query, "conversation_id")
            or ws.request.headers.get("x-conversation-id", "")
        )
        voice = _first(query, "voice") or "default"

        try:
            session = self._registry.open(session_id)
        except ValueError:
            logger.warning("Rejecting duplicate session %s", session_id)
            await ws.close(1008, "session already active")
            return

        relay = RelayChannel(
            ws,
            session=session,
            scorer=self._scorer,
            connect_upstream=lambda: self._connect_upstream(voice),
            config=self._config,
            metrics=self._metrics,
            audit=self._audit,
        )
        self._relays[session.session_id] = relay
        logger.info("Caller connected: %s (voice: %s)", session.session_id, voice)
        try:
            final = await relay.run()
            logger.info(
                "Session %s ended, final score %s",
                session.session_id, final.score if final else "n/a",
            )
        except TransportError as e:
            logger.warning("Session %s failed: %s", session.session_id, e)
        finally:
            self._relays.pop(session.session_id, None)
            self._registry.close(session.session_id)


def _first(query: dict[str, list[str]], key: str) -> str:
    values = query.get(key)
    return values[0] if values else ""
