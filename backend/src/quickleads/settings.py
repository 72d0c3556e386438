"""Application settings and configuration."""

import sys

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_JWT_DEFAULTS = {"change-me-in-production", "secret", "your_jwt_secret_key_here_at_least_32_characters"}


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "quickleads"
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"  # console or json
    allowed_origins: str = "http://localhost:5173"
    frontend_url: str | None = None

    # JWT
    jwt_secret_key: str = "change-me-in-production"

    # Database
    database_url: str = "sqlite:///./quickleads.db"

    # Stripe
    stripe_secret_key: str | None = None
    stripe_publishable_key: str | None = None
    stripe_webhook_secret: str | None = None
    stripe_currency: str = "usd"

    # Email (Postmark)
    postmark_server_token: str | None = None
    email_from: str = "notifications@quickleads.local"
    admin_notification_email: str = "orders@quickleads.local"

    # Affiliate program
    referral_cookie_days: int = 30

    @property
    def base_url(self) -> str:
        """Public URL used in emails and redirects."""
        return (self.frontend_url or self.allowed_origins.split(",")[0]).rstrip("/")


# Global settings instance
settings = Settings()

# ── Security validation ──────────────────────────────────────────────
if settings.env == "production":
    if settings.jwt_secret_key in _INSECURE_JWT_DEFAULTS or len(settings.jwt_secret_key) < 32:
        print(
            "\n❌  FATAL: JWT_SECRET_KEY is insecure or too short (min 32 chars).\n"
            "   Set a strong random value:  openssl rand -hex 32\n",
            file=sys.stderr,
        )
        sys.exit(1)
