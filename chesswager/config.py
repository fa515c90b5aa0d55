"""Application configuration."""
from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_debug: bool = True
    log_level: str = "DEBUG"

    # Database - required
    database_url: str = Field(
        ...,
        description="Database connection URL (required)",
    )
    db_pool_size: int = Field(
        default=20,
        description="DB connection pool size",
    )
    db_max_overflow: int = Field(
        default=10,
        description="Max overflow connections",
    )

    # Redis - optional, only used for realtime resume state
    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL (optional)",
    )
    redis_resume_ttl: int = 3600

    # JWT - required
    jwt_secret_key: str = Field(
        ...,
        description="JWT secret key (required, minimum 32 characters)",
    )
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60

    # Identity provider (external wallet/identity service)
    identity_provider_secret: str | None = Field(
        default=None,
        description="Shared secret used to verify identity provider proofs",
    )
    identity_provider_audience: str | None = None

    # Payments
    payment_webhook_secret: str | None = Field(
        default=None,
        description="Shared secret for payment confirmation webhooks",
    )
    payment_gateway: str | None = Field(
        default="local",
        description="Card payment gateway; \"local\" issues unbacked intents for development",
    )

    # Sentry Error Tracking
    sentry_dsn: str | None = Field(
        default=None,
        description="Sentry DSN for error tracking",
    )
    sentry_traces_sample_rate: float = 0.05

    # CORS
    cors_origins: str = "http://localhost:5173"

    # Realtime
    reconnect_grace_period: float = Field(
        default=60.0,
        description="Seconds a disconnected player has to come back before forfeiting",
    )
    ws_auth_timeout_seconds: float = 5.0
    heartbeat_interval: int = 30

    # Ledger
    ledger_max_attempts: int = Field(
        default=5,
        description="Compare-and-swap attempts before LedgerContention",
    )

    # Games
    min_wager: Decimal = Decimal("0.01")
    max_wager: Decimal = Decimal("100")
    chat_max_length: int = 200
    default_rating: int = 1200
    skill_mismatch_threshold: int = Field(
        default=300,
        description="Rating gap above which joining asks the client to confirm",
    )

    # External rating lookup
    chess_com_api_url: str = "https://api.chess.com/pub"

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret_key(cls, v: str) -> str:
        """Validate JWT secret key length."""
        if len(v) < 32:
            raise ValueError(
                "jwt_secret_key must be at least 32 characters long"
            )

        weak_patterns = [
            "change-this",
            "password",
            "12345",
            "qwerty",
        ]
        lower_v = v.lower()
        for pattern in weak_patterns:
            if pattern in lower_v:
                raise ValueError(
                    f"jwt_secret_key contains weak pattern '{pattern}'. "
                    "Use a strong, random secret key."
                )

        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings for production environment."""
        if self.app_env == "production":
            if self.app_debug:
                raise ValueError(
                    "app_debug must be False in production environment"
                )

            origins = [o.strip() for o in self.cors_origins.split(",")]
            if "*" in origins:
                raise ValueError(
                    "CORS wildcard '*' is not allowed in production environment. "
                    "Specify explicit allowed origins."
                )

            if not self.identity_provider_secret:
                raise ValueError(
                    "identity_provider_secret is required in production"
                )

            if self.payment_gateway == "local":
                raise ValueError(
                    "payment_gateway 'local' is not allowed in production. "
                    "Name a real gateway, or set it empty to disable card deposits."
                )

        return self

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
