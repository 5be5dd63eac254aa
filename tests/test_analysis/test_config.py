"""Tests for AnalysisConfig."""

import pytest
from pydantic import ValidationError

from src.analysis.config import AnalysisConfig


class TestAnalysisConfig:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ANALYSIS_PROVIDER_TIMEOUT", raising=False)
        config = AnalysisConfig(_env_file=None)

        assert config.max_body_chars == 500
        assert config.provider_timeout == 30.0
        assert config.gemini_model == "gemini-1.5-flash"
        assert config.openai_model == "gpt-4o"
        assert config.circuit_breaker_enabled is False

    def test_credentials_from_conventional_names(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "g-key")
        monkeypatch.setenv("ANALYSIS_MISTRAL_API_KEY", "m-key")

        config = AnalysisConfig(_env_file=None)

        assert config.gemini_api_key.get_secret_value() == "g-key"
        assert config.mistral_api_key.get_secret_value() == "m-key"

    def test_secrets_not_in_repr(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-very-secret")

        config = AnalysisConfig(_env_file=None)

        assert "sk-very-secret" not in repr(config)

    def test_cloudflare_needs_token_and_account(self, monkeypatch):
        monkeypatch.setenv("CLOUDFLARE_API_TOKEN", "cf-token")
        monkeypatch.delenv("CLOUDFLARE_ACCOUNT_ID", raising=False)
        assert not AnalysisConfig(_env_file=None).cloudflare_configured

        monkeypatch.setenv("CLOUDFLARE_ACCOUNT_ID", "acct")
        assert AnalysisConfig(_env_file=None).cloudflare_configured

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            AnalysisConfig(_env_file=None, provider_timeout=0)

    def test_frozen(self):
        config = AnalysisConfig(_env_file=None)
        with pytest.raises(ValidationError):
            config.max_body_chars = 10
