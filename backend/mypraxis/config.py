"""MyPraxis configuration — settings, provider defaults, timeouts."""

from typing import Literal

from pydantic_settings import BaseSettings

ModelProvider = Literal["openai", "anthropic", "google"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Runtime
    environment: str = "development"
    log_level: str = "INFO"

    # API Keys
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    google_api_key: str = ""

    # Database
    database_url: str = "sqlite:///data/mypraxis.db"

    # CORS (comma-separated origins)
    cors_origins: str = "http://localhost:3000"

    # Swap every LLM provider for the deterministic mock (e2e / CI)
    mock_external_services: bool = False

    # LLM defaults
    default_provider: ModelProvider = "openai"
    default_max_tokens: int = 4096
    default_temperature: float = 0.7
    llm_timeout_seconds: float = 120.0
    llm_max_retries: int = 2
    llm_retry_base_delay: float = 1.0
    model_openai: str = "gpt-4o-mini"
    model_anthropic: str = "claude-sonnet-4-5"
    model_google: str = "gemini-2.0-flash"
    google_api_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    # Circuit breaker (per provider)
    circuit_failure_threshold: int = 5
    circuit_reset_timeout: float = 60.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()


def get_default_models() -> dict[str, str]:
    """Resolve the fallback model per provider (env-overridable)."""
    return {
        "openai": settings.model_openai,
        "anthropic": settings.model_anthropic,
        "google": settings.model_google,
    }
