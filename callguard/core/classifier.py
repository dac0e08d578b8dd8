"""Tier-2 scam classifier backed by a chat LLM."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

from livekit.agents import llm as lk_llm

from ..errors import ClassificationUnavailable, MalformedResponse

logger = logging.getLogger(__name__)

DEFAULT_CLASSIFIER_PROMPT = """\
You are a phone scam detection system. Analyze the call transcript for scam indicators.

Look for:
- Urgency or threats
- Requests for personal or financial information
- Impersonation of authorities, banks or tech companies
- Pressure tactics
- Payment requests (gift cards, wire transfers, cryptocurrency)

Respond with ONLY a JSON object:
{"scamScore": 0-100, "keywords": ["keyword1", "keyword2"]}

If the call looks safe, respond: {"scamScore": 5, "keywords": []}
"""


@dataclass(frozen=True)
class Classification:
    score: float
    keywords: tuple[str, ...]


class LLMClassifier:
    def __init__(
        self,
        *,
        llm_instance: lk_llm.LLM,
        system_prompt: str = DEFAULT_CLASSIFIER_PROMPT,
        timeout: float = 8.0,
    ):
        self._llm = llm_instance
        self._system_prompt = system_prompt
        self._timeout = timeout

    def update_system_prompt(self, prompt: str) -> None:
        self._system_prompt = prompt

    async def classify(self, transcript: str, indicators: Sequence[str]) -> Classification:
        """Score a transcript. Raises ClassificationUnavailable or MalformedResponse."""
        ctx = lk_llm.ChatContext()
        ctx.add_message(role="system", content=self._system_prompt)
        ctx.add_message(
            role="user",
            content=(
                f"Transcript:\n{transcript}\n\n"
                f"Common scam patterns: {', '.join(indicators)}"
            ),
        )

        try:
            raw = await asyncio.wait_for(self._complete(ctx), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise ClassificationUnavailable(f"classifier timed out after {self._timeout}s") from e
        except Exception as e:
            raise ClassificationUnavailable(f"classifier request failed: {e}") from e

        return parse_classification(raw)

    async def _complete(self, ctx: lk_llm.ChatContext) -> str:
        full_text = ""
        async for chunk in self._llm.chat(chat_ctx=ctx):
            if isinstance(chunk, str):
                full_text += chunk
            elif hasattr(chunk, "delta") and chunk.delta and chunk.delta.content:
                full_text += chunk.delta.content
        return full_text


def parse_classification(raw: str) -> Classification:
    # Models sometimes wrap JSON in code fences
    text = raw.strip()
    if text.startswith("```"):
        lines = [l for l in text.split("\n") if not l.strip().startswith("```")]
        text = "\n".join(lines)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("Classifier returned unparseable response: %s", raw[:200])
        raise MalformedResponse("response is not JSON", raw=raw) from e

    if not isinstance(data, dict):
        raise MalformedResponse("response is not a JSON object", raw=raw)

    score = data.get("scamScore")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not math.isfinite(score):
        raise MalformedResponse("scamScore missing or not a number", raw=raw)

    keywords = data.get("keywords")
    if not isinstance(keywords, list) or not all(isinstance(k, str) for k in keywords):
        raise MalformedResponse("keywords missing or not a list of strings", raw=raw)

    return Classification(score=float(score), keywords=tuple(keywords))
