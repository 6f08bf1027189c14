from __future__ import annotations

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Application-level settings for the FastAPI service.

    This is separate from delivery_api.db.config.Settings, which focuses on the database layer.
    """

    # FastAPI metadata
    APP_NAME: str = Field(default="Tenant Delivery API")
    APP_DESCRIPTION: str = Field(
        default=(
            "Backend API for a multi-tenant delivery and wholesale platform. "
            "Provides delivery zones, courier notifications, catalog import, and credit billing."
        )
    )
    APP_VERSION: str = Field(default="0.1.0")

    # CORS
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Comma-separated list or JSON array of allowed origins. Default: *",
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)
    CORS_ALLOW_METHODS: List[str] = Field(default_factory=lambda: ["*"])
    CORS_ALLOW_HEADERS: List[str] = Field(default_factory=lambda: ["*"])

    # Startup behavior
    RUN_MIGRATIONS_ON_STARTUP: bool = Field(
        default=True,
        description="If true, run Alembic migrations (upgrade head) at app startup.",
    )
    AUTO_SEED: bool = Field(
        default=False,
        description="If true, run minimal database seeding after migrations.",
    )

    # Tokens
    JWT_SECRET_KEY: str = Field(default="change-me", description="HMAC secret for JWT signing")
    JWT_ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60)
    REFRESH_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24 * 14)

    # Tenancy defaults (used only by utilities or examples)
    DEFAULT_TENANT_SLUG: str = Field(default="demo-dispensary")

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = Field(default=None)
    STRIPE_WEBHOOK_SECRET: Optional[str] = Field(
        default=None,
        description="If unset, webhook signatures are not verified (development only).",
    )
    STRIPE_SUCCESS_URL: str = Field(default="http://localhost:5173/credits/success?session_id={CHECKOUT_SESSION_ID}")
    STRIPE_CANCEL_URL: str = Field(default="http://localhost:5173/credits/cancelled")

    # Twilio
    TWILIO_ACCOUNT_SID: Optional[str] = Field(default=None)
    TWILIO_AUTH_TOKEN: Optional[str] = Field(default=None)
    TWILIO_FROM_NUMBER: Optional[str] = Field(default=None)
    SMS_ENABLED: bool = Field(default=True, description="Send SMS for delivery notification stages")

    # Delivery notification stage thresholds (meters)
    EN_ROUTE_METERS: float = Field(default=8000.0)
    TEN_MINUTES_AWAY_METERS: float = Field(default=3200.0)
    FIVE_MINUTES_AWAY_METERS: float = Field(default=1600.0)
    ARRIVING_METERS: float = Field(default=300.0)

    # Credits
    FREE_TIER_STARTING_CREDITS: int = Field(default=500)
    FREE_CREDITS_ON_DOWNGRADE: int = Field(default=500)
    PAYMENT_GRACE_PERIOD_DAYS: int = Field(default=7)

    # Environment label
    ENVIRONMENT: Optional[str] = Field(
        default=None, description="Environment label (dev/test/prod)"
    )

    # Automatically load from .env at runtime. The orchestrator will provide these.
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """
        Accept both JSON array format and comma-separated formats for CORS origins.
        """
        if v is None:
            return ["*"]
        if isinstance(v, str):
            parts = [p.strip() for p in v.split(",") if p.strip()]
            return parts or ["*"]
        if isinstance(v, list):
            return v or ["*"]
        return ["*"]

    @property
    def twilio_configured(self) -> bool:
        """True when all Twilio credentials are present."""
        return bool(self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN and self.TWILIO_FROM_NUMBER)


# PUBLIC_INTERFACE
def get_app_settings() -> AppSettings:
    """
    Return a new AppSettings instance populated from environment variables.

    Note:
      For simplicity we construct a new instance each time. If caching is desired,
      we can add a module-level cache or lru_cache.
    """
    return AppSettings()
