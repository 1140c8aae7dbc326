# config.py
# Runtime settings. Values come from the environment (a .env file is loaded
# first) with SKILL_RUNNER_* overrides; defaults are production-safe.

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ENV_PREFIX = "SKILL_RUNNER_"


class Settings(BaseModel):
    # Models
    primary_model: str = "openai/gpt-4o-mini"
    fallback_model: str = "gpt-4o-mini"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openai_base_url: str = "https://api.openai.com/v1"

    # Storage
    public_dir: Path = Path("public")
    store_path: Path = Path("data/skills.json")

    # Limits
    min_call_gap_seconds: float = Field(default=1.5, ge=0)
    request_timeout: float = 30.0
    provider_timeout: float = 120.0
    planner_timeout: float = 15.0
    provider_max_retries: int = Field(default=2, ge=0)
    skill_max_steps: int = Field(default=10, ge=1)
    chat_max_steps: int = Field(default=15, ge=1)
    min_final_text_chars: int = 100
    follow_up_context_chars: int = 12000


def load_settings(env_file: str | None = None) -> Settings:
    """Build Settings from the environment after loading a .env file."""
    load_dotenv(env_file)
    overrides = {}
    for field in Settings.model_fields:
        value = os.getenv(ENV_PREFIX + field.upper())
        if value is not None:
            overrides[field] = value
    return Settings.model_validate(overrides)


def credential_from_env(name: str) -> str | None:
    """'openrouter' -> $OPENROUTER_API_KEY, 'google-maps' -> $GOOGLE_MAPS_API_KEY."""
    key = name.upper().replace("-", "_") + "_API_KEY"
    return os.getenv(key) or None
