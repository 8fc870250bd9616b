"""Runtime configuration loaded from environment variables.

This module centralizes backend settings such as database URL, round
quorum, idle auto-fill timing, narrative provider mode, and the optional
chain mirror endpoint.
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


class Settings:
    """Typed settings object used across the backend."""

    env: str = os.getenv("ENV", "dev")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./data/dev.db")
    round_quorum: int = int(os.getenv("ROUND_QUORUM", "5"))
    story_round_cap: int = int(os.getenv("STORY_ROUND_CAP", "6"))
    chaos_round_cap: int = int(os.getenv("CHAOS_ROUND_CAP", "10"))
    chaos_seed: int | None = _optional_int("CHAOS_SEED")
    auto_fill_enabled: bool = os.getenv("AUTO_FILL_ENABLED", "true").lower() in {"1", "true", "yes", "on"}
    auto_fill_timeout_ms: int = int(os.getenv("AUTO_FILL_TIMEOUT_MS", "180000"))
    auto_fill_check_interval_ms: int = int(os.getenv("AUTO_FILL_CHECK_INTERVAL_MS", "30000"))
    narrative_mode: str = os.getenv("NARRATIVE_MODE", "off").lower()
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4.1-mini")
    openai_max_output_tokens: int = int(os.getenv("OPENAI_MAX_OUTPUT_TOKENS", "1024"))
    openai_timeout_ms: int = int(os.getenv("OPENAI_TIMEOUT_MS", "30000"))
    openai_max_retries: int = int(os.getenv("OPENAI_MAX_RETRIES", "3"))
    chain_mirror_url: str = os.getenv("CHAIN_MIRROR_URL", "").strip()
    chain_mirror_timeout_ms: int = int(os.getenv("CHAIN_MIRROR_TIMEOUT_MS", "10000"))
    background_workers: int = int(os.getenv("BACKGROUND_WORKERS", "4"))
    cors_origins: list[str] = [x.strip() for x in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if x.strip()]


settings = Settings()
