"""Application configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Gateway credentials default to empty strings so a gateway can be
    deployed without the others; the affected adapter reports the gap.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="datamarket-payments", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    public_base_url: str = Field(
        default="http://localhost:8080",
        description="Externally reachable base URL, used to build gateway callback URLs",
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # Request limits
    max_request_body_size: int = Field(default=64 * 1024, description="Maximum request body size in bytes")

    # Storage
    store_backend: Literal["memory", "supabase"] = Field(
        default="memory",
        description="Order/event/effect storage backend (memory for single-process, supabase for shared)",
    )
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_secret_key: str = Field(default="", description="Supabase secret key for backend operations")

    # PayApp
    payapp_api_url: str = Field(
        default="https://api.payapp.kr/oapi/apiLoad.html",
        description="PayApp API endpoint for payment and receipt commands",
    )
    payapp_user_id: str = Field(default="", description="PayApp merchant user id")
    payapp_link_key: str = Field(default="", description="PayApp link key (API key)")
    payapp_link_value: str = Field(default="", description="PayApp link value echoed on every callback")
    payapp_allow_adhoc_orders: bool = Field(
        default=True,
        description="Create orders for PayApp payments that were never registered through checkout",
    )

    # Stripe
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")
    stripe_webhook_secret: str = Field(default="", description="Stripe webhook signing secret")
    stripe_currency: str = Field(default="krw", description="Currency for Stripe checkout sessions")
    stripe_webhook_tolerance_seconds: int = Field(
        default=300, description="Maximum age of a Stripe webhook signature timestamp"
    )

    # Outbound calls
    gateway_timeout_seconds: float = Field(default=10.0, description="Timeout for outbound gateway calls")
    gateway_max_retries: int = Field(default=3, description="Attempts for transient gateway transport errors")

    # Delivery
    delivery_base_url: str = Field(
        default="http://localhost:8080/downloads",
        description="Base URL for minted dataset download links",
    )
    delivery_signing_secret: str = Field(default="", description="Secret used to sign delivery tokens")

    # Admin
    admin_api_key: str = Field(default="", description="Key required in X-Admin-Key for admin endpoints")

    # Background work
    side_effect_retry_interval_seconds: int = Field(
        default=300, description="Interval between retries of failed receipt/delivery effects"
    )
    side_effect_lease_seconds: int = Field(
        default=600,
        description="Age after which a running receipt/delivery claim is treated as abandoned and retried",
    )

    @model_validator(mode="after")
    def require_supabase_credentials(self) -> "Settings":
        """Reject the supabase backend when its credentials are missing."""
        if self.store_backend == "supabase" and not (self.supabase_url and self.supabase_secret_key):
            raise ValueError("STORE_BACKEND=supabase requires SUPABASE_URL and SUPABASE_SECRET_KEY")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_stripe_test_mode(self) -> bool:
        """Check if using Stripe test keys."""
        return self.stripe_secret_key.startswith("sk_test_")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
