"""
Configuration management for the KrostyShop backend.

Loads settings from .env via pydantic-settings.

Security notes:
    - validate_production_settings() enforces strict CORS in production
    - DEMO_MODE exposes password-reset tokens in API responses (no mailer)
    - BINANCE_SECRET_KEY unset means hosted-payment webhooks are rejected
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/krostyshop.db"

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"
    demo_mode: bool = True  # no mailer: reset tokens are returned to the caller
    app_version: str = "1.0.0"

    # ── Auth (JWT) ──────────────────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "krostyshop-api"
    jwt_access_ttl_minutes: int = 60
    password_reset_ttl_minutes: int = 30
    admin_emails: str = ""  # comma-separated; these sign-ups become admins

    # ── Exchange Rate (USDT → VES) ──────────────────────────────────
    exchange_rate_url: str = "https://criptoya.com/api/binancep2p/USDT/VES/0.1"
    exchange_rate_field: str = "ask"
    exchange_rate_ttl_seconds: int = 60
    exchange_rate_timeout_seconds: float = 10.0

    # ── Object Storage ──────────────────────────────────────────────
    upload_dir: str = "data/uploads"
    public_base_url: str = "http://localhost:8000"
    max_upload_bytes: int = 5 * 1024 * 1024  # 5 MB

    # ── Pago Móvil payee (shown at checkout) ────────────────────────
    bank_name: str = "Banco Venezuela (0102)"
    bank_phone: str = "0412-1234567"
    bank_holder_id: str = "V-12.345.678"

    # ── Binance Pay ─────────────────────────────────────────────────
    binance_api_key: str = ""
    binance_secret_key: str = ""
    binance_api_base: str = "https://bpay.binanceapi.com"
    binance_webhook_tolerance_seconds: int = 300  # 0 disables the check

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:4321,http://127.0.0.1:4321,http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def admin_emails_list(self) -> List[str]:
        return [e.strip().lower() for e in self.admin_emails.split(",") if e.strip()]

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if self.demo_mode:
                raise ValueError(
                    "DEMO_MODE must be false in production. "
                    "Demo mode returns password-reset tokens to any caller."
                )
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to sign access tokens."
                )
            logger.info("Production settings validated")
        else:
            warnings = []
            if self.demo_mode:
                warnings.append("DEMO_MODE=true (password-reset tokens exposed)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            if not self.binance_secret_key:
                warnings.append("BINANCE_SECRET_KEY not set (Binance Pay webhooks rejected)")
            for w in warnings:
                logger.warning(w)


# Global settings instance
settings = Settings()
