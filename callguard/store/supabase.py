"""Supabase-backed scoring profile store — loads indicator lists and constants at startup."""

from __future__ import annotations

import logging
from typing import Any

from ..config import ScoringConfig

logger = logging.getLogger(__name__)

_PROFILE_FIELDS = (
    "escalation_threshold",
    "match_weight",
    "score_cap_tier1",
    "short_circuit_bonus",
    "short_circuit_cap",
    "score_cap_final",
    "evidence_limit",
    "scam_threshold",
    "cadence_turns",
    "cadence_seconds",
)


class SupabaseStore:
    """Sync Supabase client for loading scoring profiles.

    Called at startup, not per call. The `supabase` package is imported lazily
    so it stays an optional dependency.
    """

    def __init__(self, url: str, key: str, *, client: Any = None):
        if client is None:
            try:
                from supabase import create_client
            except ImportError as e:
                raise ImportError(
                    "supabase package required: pip install 'callguard[supabase]'"
                ) from e
            client = create_client(url, key)
        self._client = client

    def load_scoring_config(self, profile_id: str) -> ScoringConfig:
        row = (
            self._client.table("scoring_profiles")
            .select("*, indicators(phrase, position)")
            .eq("id", profile_id)
            .single()
            .execute()
        ).data

        indicators = sorted(row.get("indicators") or [], key=lambda r: r.get("position", 0))
        overrides = {name: row[name] for name in _PROFILE_FIELDS if row.get(name) is not None}
        if indicators:
            overrides["indicators"] = tuple(r["phrase"] for r in indicators)

        config = ScoringConfig(**overrides)
        logger.info(
            "Loaded scoring profile '%s' (%d indicators)", row.get("name", profile_id), len(config.indicators),
        )
        return config

    def list_profiles(self) -> list[dict[str, Any]]:
        return (
            self._client.table("scoring_profiles")
            .select("id, name, version, active")
            .eq("active", True)
            .execute()
            .data
        )

    def save_scoring_config(self, name: str, config: ScoringConfig, *, version: str = "1.0") -> str:
        row = {"name": name, "version": version}
        row.update({field: getattr(config, field) for field in _PROFILE_FIELDS})
        result = self._client.table("scoring_profiles").insert(row).execute()
        profile_id = result.data[0]["id"]
        self._client.table("indicators").insert([
            {"profile_id": profile_id, "phrase": phrase, "position": i}
            for i, phrase in enumerate(config.indicators)
        ]).execute()
        return profile_id
