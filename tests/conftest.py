"""
Pytest configuration and shared fixtures.

This file is automatically loaded by pytest and makes fixtures
available to all test modules.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src/ to Python path so we can import the package without installing it
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from meeting_bots.api.storage import SessionStorage  # noqa: E402
from meeting_bots.config import BotServiceConfig  # noqa: E402
from meeting_bots.models.bot import Bot  # noqa: E402


def _bot_payload(
    bot_id: str = "bot-123",
    codes: list[str] | None = None,
    start: str = "2024-12-13T10:00:00Z",
    step_seconds: int = 10,
    session_id: str = "session-1",
    message: str | None = None,
) -> dict:
    """Recall.ai bot resource with one status change per code."""
    from datetime import datetime, timedelta

    base = datetime.fromisoformat(start.replace("Z", "+00:00"))
    changes = []
    for i, code in enumerate(codes or ["ready"]):
        change = {
            "code": code,
            "created_at": (base + timedelta(seconds=i * step_seconds)).isoformat(),
            "message": None,
            "sub_code": None,
        }
        changes.append(change)
    if message and changes:
        changes[-1]["message"] = message

    return {
        "id": bot_id,
        "meeting_url": {"meeting_id": "abc-defg-hij", "platform": "google_meet"},
        "metadata": {"session_id": session_id, "source": "meeting_bots"},
        "status_changes": changes,
        "recordings": [],
    }


def _make_bot(*codes: str, **kwargs) -> Bot:
    return Bot.from_api(_bot_payload(codes=list(codes) or None, **kwargs))


@pytest.fixture
def bot_payload():
    """Factory for Recall.ai bot payloads."""
    return _bot_payload


@pytest.fixture
def make_bot():
    """Factory for Bots with a given status history, e.g. make_bot("joining_call", "in_call")."""
    return _make_bot


@pytest.fixture
def config(tmp_path: Path) -> BotServiceConfig:
    """Configuration with fast timings and local storage."""
    return BotServiceConfig(
        recall_api_key="test-key",
        webhook_secret="whsec_dGVzdHNlY3JldHRlc3RzZWNyZXQ=",
        app_url="https://bots.example.com",
        create_retry_delay=0,
        monitor_poll_interval=0.01,
        monitor_timeout=5.0,
        output_dir=str(tmp_path / "outputs"),
        api_key="secret-api-key",
    )


@pytest.fixture
def storage(config: BotServiceConfig) -> SessionStorage:
    """Local JSON session storage in a temporary directory."""
    return SessionStorage(config)


@pytest.fixture
def gateway() -> MagicMock:
    """Bot gateway stub with async methods."""
    mock = MagicMock()
    mock.name = "Recall.ai"
    mock.create_bot = AsyncMock()
    mock.get_bot = AsyncMock()
    mock.stop_bot = AsyncMock(return_value=None)
    return mock
