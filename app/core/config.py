from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "bv_user"
    postgres_password: str = "changeme"
    postgres_db: str = "brand_visibility"

    @property
    def postgres_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def postgres_url_sync(self) -> str:
        """For Alembic migrations (sync driver)."""
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis (Celery broker + model distribution state)
    redis_url: str = "redis://localhost:6379/0"

    # App
    app_env: str = "development"
    app_debug: bool = True
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # LLM providers
    provider_timeout_seconds: float = 60.0
    health_check_timeout_seconds: float = 30.0
    distribution_strategy: str = "weighted"  # round_robin | weighted | random | performance_based

    # Prompt generation
    prompts_per_model: int = 25
    secondary_prompts_per_model: int = 5  # post prompts from non-primary providers

    # Analysis
    citation_prompt_cap: int = 25
    visibility_window_days: int = 30

    # Admin notifications (model health check)
    telegram_bot_token: str = ""
    telegram_admin_chat_id: str = ""

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable
    sentry_traces_sample_rate: float = 0.1


settings = Settings()


def validate_settings_for_production() -> None:
    """Validate critical settings. Called on startup in non-test environments."""
    errors: list[str] = []

    if settings.app_env == "production":
        if settings.app_debug:
            errors.append("APP_DEBUG must be false in production")
        if settings.postgres_password in ("changeme", ""):
            errors.append("POSTGRES_PASSWORD must be set to a secure value")
        if not settings.telegram_bot_token or not settings.telegram_admin_chat_id:
            errors.append("TELEGRAM_BOT_TOKEN and TELEGRAM_ADMIN_CHAT_ID must be set for model health alerts")

    if settings.provider_timeout_seconds <= 0 or settings.health_check_timeout_seconds <= 0:
        errors.append("Provider timeouts must be positive")

    if settings.citation_prompt_cap < 1:
        errors.append("CITATION_PROMPT_CAP must be at least 1")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
