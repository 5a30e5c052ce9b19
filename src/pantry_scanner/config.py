"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_key: str
    supabase_access_token: str | None = None
    household_id: str | None = None
    openai_api_key: str
    openai_model: str = "gpt-5.2"
    openai_reasoning_effort: str = "low"
    openai_store: bool = False
    ingest_function_name: str = "scanner-ingest"
    plu_function_name: str = "lookup-plu"
    ingest_retry_attempts: int = 2
    ingest_retry_delay_seconds: float = 0.5
    ingest_retry_backoff_multiplier: float = 2.0
    ingest_retry_max_delay_seconds: float = 8.0
    step1_timeout_seconds: float = 20.0
    step2_timeout_seconds: float = 10.0
    flag_timeout_seconds: float = 10.0
    permission_timeout_seconds: float = 30.0
    snapshot_path: str = ".pantry_scanner/state.json"
    snapshot_max_age_seconds: int = 86400
    history_limit: int = 20
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def functions_base_url(supabase_url: str) -> str:
    """Return the edge-functions base URL for a Supabase project URL."""
    cleaned = supabase_url.strip().rstrip("/")
    if cleaned.endswith("/functions/v1"):
        return cleaned
    return f"{cleaned}/functions/v1"
