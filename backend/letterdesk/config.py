"""
LetterDesk - Configuration
Environment-driven settings, loaded once at startup and passed explicitly.
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./letterdesk.db"


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Process-wide settings."""
    session_secret: str
    database_url: str = DEFAULT_DATABASE_URL

    # Content generation
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    generation_timeout_seconds: int = 60
    generation_workers: int = 4
    generation_stall_minutes: int = 15

    # Payments
    stripe_secret_key: Optional[str] = None
    stripe_publishable_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None

    # Documents
    pdf_output_dir: str = "generated-pdfs"

    internal_api_key: Optional[str] = None
    token_expire_days: int = 7
    log_level: str = "INFO"

    @property
    def generation_enabled(self) -> bool:
        return self.openai_api_key is not None

    @property
    def payments_enabled(self) -> bool:
        return self.stripe_secret_key is not None


def load_settings() -> Settings:
    """
    Read settings from the environment.

    SESSION_SECRET is mandatory; every other integration degrades to
    "unavailable" when its key is missing.
    """
    session_secret = _optional("SESSION_SECRET")
    if not session_secret:
        raise ConfigurationError("Missing required SESSION_SECRET")

    database_url = _optional("DATABASE_URL")
    if database_url is None:
        logger.warning(f"DATABASE_URL not provided - using {DEFAULT_DATABASE_URL}")
        database_url = DEFAULT_DATABASE_URL

    settings = Settings(
        session_secret=session_secret,
        database_url=database_url,
        openai_api_key=_optional("OPENAI_API_KEY"),
        openai_model=_optional("OPENAI_MODEL") or "gpt-4o-mini",
        generation_timeout_seconds=_int("GENERATION_TIMEOUT_SECONDS", 60),
        generation_workers=_int("GENERATION_WORKERS", 4),
        generation_stall_minutes=_int("GENERATION_STALL_MINUTES", 15),
        stripe_secret_key=_optional("STRIPE_SECRET_KEY"),
        stripe_publishable_key=_optional("STRIPE_PUBLISHABLE_KEY"),
        stripe_webhook_secret=_optional("STRIPE_WEBHOOK_SECRET"),
        pdf_output_dir=_optional("PDF_OUTPUT_DIR") or "generated-pdfs",
        internal_api_key=_optional("INTERNAL_API_KEY"),
        token_expire_days=_int("TOKEN_EXPIRE_DAYS", 7),
        log_level=(_optional("LOG_LEVEL") or "INFO").upper(),
    )
    warn_missing_integrations(settings)
    return settings


def warn_missing_integrations(settings: Settings) -> None:
    """Log one warning per optional integration that is not configured."""
    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY not provided - payment features will be disabled")
    if not settings.stripe_publishable_key:
        logger.warning("STRIPE_PUBLISHABLE_KEY not provided - checkout functionality will be limited")
    if settings.stripe_secret_key and not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET not provided - payment webhooks will be refused")
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not provided - AI letter generation will be disabled")
    if not settings.internal_api_key:
        logger.warning("INTERNAL_API_KEY not provided - maintenance endpoints will be disabled")
