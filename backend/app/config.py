"""Configuration settings for the PhysioFit backend."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Supabase
    supabase_url: str
    # New key system (preferred)
    supabase_secret_key: str | None = None  # Backend/admin access
    # Legacy key (deprecated, will be removed)
    supabase_service_role_key: str | None = None
    chat_turns_table: str = "chat_messages"
    # Monotonic column breaking created_at ties (None if the table has none)
    chat_turns_sequence_column: str | None = None
    observations_table: str = "pain_logs"

    # Auth: Supabase-issued access tokens
    supabase_jwt_secret: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"
    auth_cookie_name: str = "physiofit_auth"

    # Generation backend (Ollama)
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "qwen2.5:7b"
    generation_timeout_seconds: float = 30.0

    # Relay policy
    observation_limit: int = 5
    history_limit: int = 50
    trust_client_transcript: bool = True

    # Coach prompt overrides (empty = built-in default)
    coach_persona: str = ""
    coach_safety_directive: str = ""
    coach_formatting_directive: str = ""

    # App
    debug: bool = False
    log_level: str = "INFO"
    chat_rate_limit: str = "30/minute"
    # Only these peers may set X-Forwarded-For (Railway, Docker, local dev)
    trusted_proxy_cidrs: list[str] = [
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "::1/128",
    ]
    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
