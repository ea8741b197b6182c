"""
Application configuration.

Every setting reads from the environment (or `.env`) under its upper-cased
name, e.g. `STRIPE_SECRET_KEY`. Defaults run the app locally with email and
billing calls logged or failing softly.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_JWT_SECRET = "dev-jwt-secret-change-in-production"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ==========================================================================
    # Runtime
    # ==========================================================================

    environment: str = "development"
    log_level: str = "INFO"

    # Comma-separated; ignored outside production, where any origin is allowed
    cors_origins: str = "http://localhost:3000"

    # Web client that email links and OAuth redirects point at
    client_url: str = "http://localhost:3000"

    # ==========================================================================
    # Tokens
    # ==========================================================================

    jwt_secret_key: str = DEV_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 30
    jwt_refresh_token_expire_days: int = 30
    jwt_reset_password_expire_minutes: int = 10
    jwt_verify_email_expire_days: int = 15

    # ==========================================================================
    # OAuth sign-in (a provider is offered only when both values are set)
    # ==========================================================================

    google_oauth_client_id: str = ""
    google_oauth_client_secret: str = ""
    github_oauth_client_id: str = ""
    github_oauth_client_secret: str = ""

    # ==========================================================================
    # Email via AWS SES
    # ==========================================================================

    aws_region: str = "us-east-1"
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_ses_from_email: str = ""

    # ==========================================================================
    # Billing via Stripe
    # ==========================================================================

    stripe_secret_key: str = ""
    stripe_api_base: str = "https://api.stripe.com"
    # Webhook signatures are checked only when this is set
    stripe_webhook_secret: str = ""

    billing_catalog_ttl_seconds: int = 3600
    # Create configured plans (resources/plans.yaml) missing from Stripe at startup
    billing_sync_plans: bool = False

    # ==========================================================================
    # Error tracking
    # ==========================================================================

    sentry_dsn: str = ""

    @model_validator(mode="after")
    def _require_real_secret_in_production(self) -> "Settings":
        if self.is_production and self.jwt_secret_key == DEV_JWT_SECRET:
            raise ValueError("JWT_SECRET_KEY must be set in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cors_origins_list(self) -> list[str]:
        if not self.is_production:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def use_aws(self) -> bool:
        return bool(self.aws_access_key_id and self.aws_secret_access_key)

    def oauth_credentials(self, provider: str) -> tuple[str, str]:
        """(client_id, client_secret) for a provider name; empty strings if unknown."""
        return (
            getattr(self, f"{provider}_oauth_client_id", ""),
            getattr(self, f"{provider}_oauth_client_secret", ""),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
