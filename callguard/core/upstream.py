"""Connection to the voice-agent peer: signed-URL exchange, then a websocket."""

from __future__ import annotations

import asyncio
import json
import logging

import aiohttp
import websockets
from websockets.asyncio.client import ClientConnection, connect

from ..config import VoiceAgentConfig
from ..errors import TransportError

logger = logging.getLogger(__name__)


def _error_message(body: str) -> str:
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body
    if not isinstance(data, dict):
        return body
    detail = data.get("detail")
    if isinstance(detail, dict) and detail.get("message"):
        return str(detail["message"])
    if isinstance(detail, str):
        return detail
    return str(data.get("message") or body)


async def fetch_signed_url(
    http: aiohttp.ClientSession,
    config: VoiceAgentConfig,
    *,
    voice: str = "default",
) -> str:
    """Exchange service credentials for a short-lived streaming URL."""
    agent_id = config.agent_id_for(voice)
    if not config.api_key or not agent_id:
        raise TransportError(f"voice agent not configured for voice '{voice}'")

    logger.info("Requesting signed URL for agent %s (voice: %s)", agent_id, voice)
    try:
        async with http.get(
            config.signed_url_endpoint,
            params={"agent_id": agent_id},
            headers={"xi-api-key": config.api_key},
            timeout=aiohttp.ClientTimeout(total=config.request_timeout),
        ) as resp:
            body = await resp.text()
            if resp.status != 200:
                raise TransportError(
                    f"signed URL request failed ({resp.status}): {_error_message(body)}"
                )
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise TransportError(f"signed URL request failed: {e}") from e

    try:
        signed_url = json.loads(body).get("signed_url")
    except (json.JSONDecodeError, AttributeError):
        signed_url = None
    if not signed_url:
        raise TransportError("invalid response from voice agent service: missing signed_url")
    return signed_url


class VoiceAgentConnector:
    """Opens one upstream connection per call. Reconnection means a new session."""

    def __init__(
        self,
        config: VoiceAgentConfig,
        http: aiohttp.ClientSession,
        *,
        open_timeout: float = 10.0,
    ):
        self._config = config
        self._http = http
        self._open_timeout = open_timeout

    async def connect(self, voice: str = "default") -> ClientConnection:
        url = await fetch_signed_url(self._http, self._config, voice=voice)
        try:
            return await connect(url, open_timeout=self._open_timeout)
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as e:
            raise TransportError(f"voice agent handshake failed: {e}") from e
