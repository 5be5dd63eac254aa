"""Tests for environment-based settings."""

import pytest

from src.config.settings import Settings, get_settings


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.analysis_mode == "event"
        assert settings.story_stream_name == "story_fetched"
        assert settings.reddit_subreddits[0] == "nosleep"
        assert settings.reddit_posts_per_subreddit == 2
        assert settings.youtube_videos_per_query == 2
        assert settings.repair_on_crawl is True
        assert settings.is_production is False

    def test_retry_policy(self):
        settings = Settings(_env_file=None)

        assert settings.event_retry_interval_seconds == 5.0
        assert settings.event_max_retries == 3
        assert settings.event_max_delivery_attempts == 4
        assert settings.event_claim_idle_seconds == 300.0
        assert settings.event_republish_after_seconds == 900.0

    def test_claim_idle_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("EVENT_CLAIM_IDLE_SECONDS", "0")

        with pytest.raises(ValueError):
            Settings(_env_file=None)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ANALYSIS_MODE", "inline")
        monkeypatch.setenv("REDDIT_SUBREDDITS", '["nosleep"]')
        monkeypatch.setenv("EVENT_MAX_RETRIES", "5")

        settings = Settings(_env_file=None)

        assert settings.analysis_mode == "inline"
        assert settings.reddit_subreddits == ["nosleep"]
        assert settings.event_max_delivery_attempts == 6

    def test_rejects_unknown_mode(self, monkeypatch):
        monkeypatch.setenv("ANALYSIS_MODE", "batch")

        with pytest.raises(ValueError):
            Settings(_env_file=None)

    def test_get_settings_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
