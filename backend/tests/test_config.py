"""
Tests for environment-driven settings.
"""
import logging

import pytest

from letterdesk.config import DEFAULT_DATABASE_URL, load_settings
from letterdesk.errors import ConfigurationError

ENV_VARS = [
    "SESSION_SECRET", "DATABASE_URL", "OPENAI_API_KEY", "OPENAI_MODEL",
    "GENERATION_TIMEOUT_SECONDS", "GENERATION_WORKERS", "GENERATION_STALL_MINUTES",
    "STRIPE_SECRET_KEY", "STRIPE_PUBLISHABLE_KEY", "STRIPE_WEBHOOK_SECRET",
    "PDF_OUTPUT_DIR", "INTERNAL_API_KEY", "TOKEN_EXPIRE_DAYS", "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadSettings:

    def test_session_secret_required(self):
        with pytest.raises(ConfigurationError, match="SESSION_SECRET"):
            load_settings()

    def test_defaults(self, monkeypatch):
        monkeypatch.setenv("SESSION_SECRET", "s3cret")

        settings = load_settings()

        assert settings.database_url == DEFAULT_DATABASE_URL
        assert settings.generation_enabled is False
        assert settings.payments_enabled is False
        assert settings.generation_timeout_seconds == 60
        assert settings.pdf_output_dir == "generated-pdfs"

    def test_integrations_enabled(self, monkeypatch):
        monkeypatch.setenv("SESSION_SECRET", "s3cret")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test")
        monkeypatch.setenv("GENERATION_WORKERS", "8")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = load_settings()

        assert settings.generation_enabled is True
        assert settings.payments_enabled is True
        assert settings.generation_workers == 8
        assert settings.log_level == "DEBUG"

    def test_bad_integer(self, monkeypatch):
        monkeypatch.setenv("SESSION_SECRET", "s3cret")
        monkeypatch.setenv("GENERATION_WORKERS", "many")

        with pytest.raises(ConfigurationError, match="GENERATION_WORKERS"):
            load_settings()

    def test_warns_when_webhook_secret_missing(self, monkeypatch, caplog):
        monkeypatch.setenv("SESSION_SECRET", "s3cret")
        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test")

        with caplog.at_level(logging.WARNING, logger="letterdesk.config"):
            load_settings()

        assert "STRIPE_WEBHOOK_SECRET" in caplog.text

    def test_no_webhook_warning_when_signed(self, monkeypatch, caplog):
        monkeypatch.setenv("SESSION_SECRET", "s3cret")
        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test")
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")

        with caplog.at_level(logging.WARNING, logger="letterdesk.config"):
            load_settings()

        assert "STRIPE_WEBHOOK_SECRET" not in caplog.text
