"""
CallGuard relay server — screens incoming calls through a voice agent.

Each caller connection on ws://<host>:<port>/relay gets its own relay channel:
audio is forwarded to the ElevenLabs conversational agent, and the transcript
is scored for scam risk while the call is live.

Prerequisites:
    uv pip install "callguard[demo]"

Required env vars (see .env):
    ELEVENLABS_API_KEY, ELEVENLABS_AGENT_ID (or ELEVENLABS_AGENT_ID_DEFAULT)

Optional:
    CLASSIFIER_API_KEY (or GROQ_API_KEY) — enables AI-assisted scoring
    CLASSIFIER_BASE_URL, CLASSIFIER_MODEL
    SUPABASE_URL, SUPABASE_KEY, CALLGUARD_SCORING_PROFILE
    CALLGUARD_RECORDING_DIR, CALLGUARD_AUDIT_PATH

Run:
    python demo/serve.py
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import aiohttp
from livekit.plugins import openai

from callguard import (
    AuditLogger,
    LLMClassifier,
    MetricsCollector,
    RelayServer,
    RiskScorer,
    Settings,
    SupabaseStore,
    VoiceAgentConnector,
)

logger = logging.getLogger(__name__)


def _build_scorer(settings: Settings, metrics) -> RiskScorer:
    scoring = settings.scoring
    if settings.supabase_url and settings.scoring_profile:
        store = SupabaseStore(url=settings.supabase_url, key=settings.supabase_key)
        scoring = store.load_scoring_config(settings.scoring_profile)

    classifier = None
    if settings.classifier.configured:
        classifier = LLMClassifier(
            llm_instance=openai.LLM(
                base_url=settings.classifier.base_url,
                api_key=settings.classifier.api_key,
                model=settings.classifier.model,
            ),
            timeout=settings.classifier.timeout,
        )
    else:
        logger.warning("CLASSIFIER_API_KEY not set, using pattern-based scoring only")
    return RiskScorer(scoring, classifier=classifier, metrics=metrics)


async def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    settings = Settings.from_env(Path(__file__).parent / ".env")

    audit = None
    if settings.relay.audit_path:
        audit = AuditLogger(settings.relay.audit_path)
        audit.start()

    async with aiohttp.ClientSession() as http:
        connector = VoiceAgentConnector(
            settings.voice_agent, http, open_timeout=settings.relay.connect_timeout,
        )
        metrics = MetricsCollector()
        server = RelayServer(
            scorer=_build_scorer(settings, metrics),
            connect_upstream=connector.connect,
            config=settings.relay,
            host=settings.host,
            port=settings.port,
            metrics=metrics,
            audit=audit,
        )

        print(f"Relay:   ws://{settings.host}:{settings.port}/relay?session_id=<id>&voice=default")
        print(f"Polling: http://{settings.host}:{settings.port}/sessions/<id>")
        print("Press Ctrl+C to stop.")
        try:
            await server.serve_forever()
        finally:
            await server.stop()
            if audit:
                audit.stop()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nStopping relay...")
