"""Tests for BotServiceConfig."""

import os
from unittest.mock import patch

from meeting_bots.config import BotServiceConfig


class TestFromEnv:
    """Tests for building configuration from the environment."""

    def test_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            config = BotServiceConfig.from_env()

        assert config.recall_base_url == "https://us-west-2.recall.ai/api/v1"
        assert config.webhook_base_url == "http://localhost:8080/webhooks/recall"
        assert config.create_max_attempts == 3
        assert config.enhancement_guard is True
        assert config.uses_firestore is False

    def test_overrides(self) -> None:
        env = {
            "RECALL_AI_API_KEY": "key",
            "RECALL_AI_REGION": "eu-west-1",
            "APP_URL": "https://bots.example.com/",
            "BOT_CREATE_MAX_ATTEMPTS": "5",
            "BOT_MONITOR_TIMEOUT": "120",
            "BOT_ENHANCEMENT_GUARD": "false",
            "GOOGLE_CLOUD_PROJECT": "my-project",
            "ENV": "development",
        }
        with patch.dict(os.environ, env, clear=True):
            config = BotServiceConfig.from_env()

        assert config.recall_base_url == "https://eu-west-1.recall.ai/api/v1"
        assert config.webhook_base_url == "https://bots.example.com/webhooks/recall"
        assert config.create_max_attempts == 5
        assert config.monitor_timeout == 120.0
        assert config.enhancement_guard is False
        assert config.uses_firestore is True
        assert config.development is True

    def test_explicit_urls_win(self) -> None:
        env = {
            "RECALL_AI_BASE_URL": "https://proxy.example.com/api/v1/",
            "RECALL_AI_WEBHOOK_URL": "https://hooks.example.com/recall/",
        }
        with patch.dict(os.environ, env, clear=True):
            config = BotServiceConfig.from_env()

        assert config.recall_base_url == "https://proxy.example.com/api/v1"
        assert config.webhook_base_url == "https://hooks.example.com/recall"

    def test_bad_numbers_fall_back(self) -> None:
        env = {"BOT_CREATE_MAX_ATTEMPTS": "many", "BOT_MONITOR_POLL_INTERVAL": "soon"}
        with patch.dict(os.environ, env, clear=True):
            config = BotServiceConfig.from_env()

        assert config.create_max_attempts == 3
        assert config.monitor_poll_interval == 5.0


class TestValidate:
    def test_valid(self, config: BotServiceConfig) -> None:
        assert config.validate() == []

    def test_errors(self) -> None:
        config = BotServiceConfig(recall_region="mars-1", monitor_poll_interval=10, monitor_timeout=5)

        errors = config.validate()

        assert "RECALL_AI_API_KEY is required" in errors
        assert any("RECALL_AI_REGION" in e for e in errors)
        assert "RECALL_WEBHOOK_SECRET is required outside development" in errors
        assert "BOT_MONITOR_TIMEOUT must be at least the poll interval" in errors

    def test_webhook_secret_optional_in_development(self) -> None:
        config = BotServiceConfig(recall_api_key="key", development=True)

        assert config.validate() == []


def test_to_dict_has_no_secrets(config: BotServiceConfig) -> None:
    summary = config.to_dict()

    assert summary["recall_configured"] is True
    assert summary["webhook_verification"] is True
    assert "test-key" not in summary.values()
    assert config.webhook_secret not in summary.values()
    assert config.api_key not in summary.values()
