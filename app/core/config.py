from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # PostgreSQL (security history + API keys)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "bridge_user"
    postgres_password: str = "changeme"
    postgres_db: str = "bridge_router"

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

    # Redis: leave empty to use the in-process cache and rate limiter
    redis_url: str = "redis://localhost:6379/0"
    redis_command_timeout_seconds: float = 3.0

    # Quote aggregation
    quote_cache_ttl_seconds: int = 30
    provider_timeout_seconds: float = 5.0  # per-adapter ceiling (T)
    global_timeout_seconds: float = 8.0  # whole fan-out ceiling (G)
    enabled_bridges: str = ""  # comma-separated provider ids, empty = all registered

    # Default ranking weights (re-normalized before use)
    default_cost_weight: float = 0.4
    default_speed_weight: float = 0.4
    default_security_weight: float = 0.2

    # Rate limits
    anonymous_rate_limit_per_minute: int = 10
    anonymous_rate_limit_per_hour: int = 100
    default_rate_limit_per_minute: int = 100
    default_rate_limit_per_hour: int = 1000

    # App
    app_env: str = "development"
    app_debug: bool = True
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # CORS
    allowed_origins: str = "*"  # comma-separated

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable


settings = Settings()


def validate_settings_for_production() -> None:
    """Validate critical settings. Called on startup."""
    errors: list[str] = []

    if settings.global_timeout_seconds <= settings.provider_timeout_seconds:
        errors.append("GLOBAL_TIMEOUT_SECONDS must be greater than PROVIDER_TIMEOUT_SECONDS")

    if settings.quote_cache_ttl_seconds <= 0:
        errors.append("QUOTE_CACHE_TTL_SECONDS must be positive")

    weights = (
        settings.default_cost_weight,
        settings.default_speed_weight,
        settings.default_security_weight,
    )
    if any(w < 0 for w in weights) or sum(weights) <= 0:
        errors.append("Default ranking weights must be non-negative and not all zero")

    if settings.app_env == "production":
        if settings.allowed_origins == "*":
            errors.append("ALLOWED_ORIGINS must not be '*' in production")
        if settings.app_debug:
            errors.append("APP_DEBUG must be false in production")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
