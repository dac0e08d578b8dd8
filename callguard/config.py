"""Configuration for scoring, relay and the external peers.

Scoring constants are injected rather than inlined so tests and deployments
can substitute their own indicator lists.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_INDICATORS: tuple[str, ...] = (
    # Impersonation
    "social security number",
    "irs",
    "tax fraud",
    "arrest warrant",
    "tech support",
    "microsoft support",
    "apple support",
    "grandson in jail",
    "family emergency",
    # Urgency
    "urgent action required",
    "suspicious activity",
    "act now",
    "limited time offer",
    "your computer is infected",
    "congratulations you won",
    "claim your prize",
    # Payment requests
    "wire transfer",
    "gift card",
    "bitcoin",
    "cryptocurrency",
    "send money",
    "pay immediately",
    "refund",
    "refund owed",
    # Credential harvesting
    "verify your account",
    "verify your identity",
    "confirm your identity",
    "bank account number",
    "credit card",
    "routing number",
    "password",
    "pin number",
    "security code",
    "cvv",
)


@dataclass(frozen=True)
class ScoringConfig:
    indicators: tuple[str, ...] = DEFAULT_INDICATORS
    escalation_threshold: int = 3
    match_weight: int = 15
    score_cap_tier1: int = 85
    short_circuit_bonus: int = 10
    short_circuit_cap: int = 95
    score_cap_final: int = 100
    evidence_limit: int = 5
    scam_threshold: int = 40
    # Cadence: evaluate every N new turns, and at most once per M seconds.
    cadence_turns: int = 1
    cadence_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.escalation_threshold < 1:
            raise ValueError("escalation_threshold must be >= 1")
        if self.match_weight < 1:
            raise ValueError("match_weight must be >= 1")
        if self.evidence_limit < 1:
            raise ValueError("evidence_limit must be >= 1")
        if self.cadence_turns < 1:
            raise ValueError("cadence_turns must be >= 1")
        if self.cadence_seconds < 0:
            raise ValueError("cadence_seconds must be >= 0")
        for name in ("score_cap_tier1", "short_circuit_cap", "score_cap_final", "scam_threshold"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be within [0, 100], got {value}")
        # Normalise once so matching never re-lowercases.
        cleaned = tuple(dict.fromkeys(p.strip().lower() for p in self.indicators if p.strip()))
        object.__setattr__(self, "indicators", cleaned)

    def with_overrides(self, **changes) -> ScoringConfig:
        return replace(self, **changes)


@dataclass(frozen=True)
class RelayConfig:
    connect_timeout: float = 10.0
    drain_timeout: float = 2.0
    max_chunks: int = 50_000
    max_duration_ms: int = 3_600_000
    recording_dir: str = ""
    audit_path: str = ""


@dataclass(frozen=True)
class VoiceAgentConfig:
    api_key: str = ""
    agent_ids: dict[str, str] = field(default_factory=dict)
    signed_url_endpoint: str = "https://api.elevenlabs.io/v1/convai/conversation/get-signed-url"
    request_timeout: float = 10.0

    def agent_id_for(self, voice: str = "default") -> str:
        """Map a voice preference to an agent id, falling back to the default voice."""
        if voice not in ("default", "female", "male"):
            voice = "default"
        return self.agent_ids.get(voice, "")


@dataclass(frozen=True)
class ClassifierConfig:
    api_key: str = ""
    base_url: str = "https://api.groq.com/openai/v1"
    model: str = "llama-3.3-70b-versatile"
    timeout: float = 8.0

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 3001
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    voice_agent: VoiceAgentConfig = field(default_factory=VoiceAgentConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    supabase_url: str = ""
    supabase_key: str = ""
    scoring_profile: str = ""

    @staticmethod
    def from_env(env_file: str | Path | None = None) -> Settings:
        load_dotenv(env_file)
        env = os.environ

        agent_ids = {
            "default": env.get("ELEVENLABS_AGENT_ID_DEFAULT", "") or env.get("ELEVENLABS_AGENT_ID", ""),
            "female": env.get("ELEVENLABS_AGENT_ID_FEMALE", ""),
            "male": env.get("ELEVENLABS_AGENT_ID_MALE", ""),
        }
        scoring = ScoringConfig(
            cadence_turns=int(env.get("CALLGUARD_SCORING_CADENCE_TURNS", "1")),
            cadence_seconds=float(env.get("CALLGUARD_SCORING_CADENCE_SECONDS", "0")),
        )
        classifier = ClassifierConfig(
            api_key=env.get("CLASSIFIER_API_KEY", "") or env.get("GROQ_API_KEY", ""),
            base_url=env.get("CLASSIFIER_BASE_URL", ClassifierConfig.base_url),
            model=env.get("CLASSIFIER_MODEL", ClassifierConfig.model),
        )
        return Settings(
            host=env.get("CALLGUARD_HOST", "0.0.0.0"),
            port=int(env.get("CALLGUARD_PORT", "3001")),
            scoring=scoring,
            relay=RelayConfig(
                recording_dir=env.get("CALLGUARD_RECORDING_DIR", ""),
                audit_path=env.get("CALLGUARD_AUDIT_PATH", ""),
            ),
            voice_agent=VoiceAgentConfig(
                api_key=env.get("ELEVENLABS_API_KEY", ""),
                agent_ids={k: v for k, v in agent_ids.items() if v},
            ),
            classifier=classifier,
            supabase_url=env.get("SUPABASE_URL", ""),
            supabase_key=env.get("SUPABASE_KEY", ""),
            scoring_profile=env.get("CALLGUARD_SCORING_PROFILE", ""),
        )
