from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str

    @property
    def async_database_url(self) -> str:
        """Return database URL with asyncpg driver for SQLAlchemy async."""
        url = self.database_url
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+asyncpg://", 1)
        return url

    # Redis / job queue
    redis_url: str = "redis://localhost:6379/0"
    queue_name: str = "document-extraction"
    job_max_attempts: int = 3
    job_backoff_type: str = "exponential"  # exponential | fixed
    job_backoff_delay_ms: int = 5000
    job_backoff_max_delay_ms: int = 600_000
    job_timeout_ms: int = 120_000
    keep_completed_seconds: int = 24 * 3600
    keep_completed_count: int = 1000
    keep_failed_seconds: int = 7 * 24 * 3600

    # Extraction model defaults
    extraction_provider: str = "openai"
    extraction_model: str = "gpt-4o-mini"
    extraction_temperature: float = 0.1
    extraction_max_tokens: int = 4096

    # LLM API Keys
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    google_ai_api_key: str = ""
    deepseek_api_key: str = ""
    openrouter_api_key: str = ""

    # Storage
    storage_root: str = "uploads"

    # Langfuse
    langfuse_secret_key: str = ""
    langfuse_public_key: str = ""
    langfuse_host: str = "http://localhost:3000"

    # App
    app_env: str = "development"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    def provider_api_key(self, provider: str) -> str:
        """Return the configured API key for an extraction provider ('' if unset)."""
        return {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "google": self.google_ai_api_key,
            "deepseek": self.deepseek_api_key,
            "openrouter": self.openrouter_api_key,
        }.get(provider, "")


settings = Settings()
