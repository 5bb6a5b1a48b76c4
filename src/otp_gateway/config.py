"""OTP Gateway — configuration loaded from environment."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./otp_gateway.db"

    # ── Account tokens ────────────────────────────────────
    jwt_secret: str = "change-me-in-production-please-use-32-bytes"
    jwt_algorithm: str = "HS256"
    jwt_expires_hours: int = 24

    # ── Stored delivery credentials ───────────────────────
    credential_secret: str = "change-me-credential-secret"

    # ── OTP ───────────────────────────────────────────────
    otp_ttl_seconds: int = 300
    otp_length: int = 6
    delivery_timeout_seconds: float = 20.0

    # ── SMTP for the "custom" provider ────────────────────
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_use_tls: bool = False

    # ── App ───────────────────────────────────────────────
    api_base_url: str = "http://localhost:8000"
    app_name: str = "OTP Gateway"
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton settings instance
settings = Settings()
