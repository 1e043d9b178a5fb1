"""Application configuration."""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    admin_token: str
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-5-mini-2025-08-07"
    detection_prompt_id: str = "pmpt_69a212c896ec8193a288574454e778290065f891e62410ce"
    detection_prompt_version: str = "3"
    inference_timeout_seconds: float = 120.0
    inference_connect_timeout_seconds: float = 30.0
    photo_dir: Path = Path("photos")
    detection_session_idle_seconds: float = 3600.0
    max_detection_sessions: int = 1000
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
