"""
Tests for BotSessionManager.

Test coverage:
- Happy path: bot attached, monitor started
- Retries and fallback after exhausted creation attempts
- Unsupported platforms and the enhancement guard
- Stopping a session's bot
"""

import asyncio
from unittest.mock import ANY, AsyncMock, MagicMock, patch

import pytest

from meeting_bots.api.storage import SessionStorage
from meeting_bots.config import BotServiceConfig
from meeting_bots.errors import UpstreamTransportError
from meeting_bots.services.session_manager import BotSessionManager
from meeting_bots.services.status_monitor import MonitorOutcome, StatusMonitor

MEET_URL = "https://meet.google.com/abc-defg-hij"


@pytest.fixture
def monitor() -> MagicMock:
    """Monitor stub that finishes immediately."""
    mock = MagicMock()
    mock.run = AsyncMock(return_value=MonitorOutcome.JOINED)
    return mock


@pytest.fixture
def manager(storage: SessionStorage, gateway: MagicMock, config: BotServiceConfig, monitor: MagicMock) -> BotSessionManager:
    return BotSessionManager(storage, gateway, config, monitor=monitor)


@pytest.fixture(autouse=True)
def session(storage: SessionStorage) -> dict:
    return storage.create_session("s1", user="user@example.com", title="Weekly sync")


class TestEnhanceSessionSuccess:
    """Tests for a successful enhancement."""

    def test_end_to_end(self, manager, storage, gateway, monitor, make_bot) -> None:
        """Bot attached, fields persisted, monitor started for the bot."""
        # Arrange
        gateway.create_bot.return_value = make_bot("ready", bot_id="bot-abc")

        async def scenario():
            bot = await manager.enhance_session("s1", MEET_URL)
            handle = manager.active_monitor("s1")
            assert handle is not None
            assert handle.bot_id == "bot-abc"
            await handle.task
            return bot

        # Act
        bot = asyncio.run(scenario())

        # Assert
        assert bot.id == "bot-abc"
        saved = storage.get_session("s1")
        assert saved["meeting_platform"] == "google_meet"
        assert saved["meeting_url"] == MEET_URL
        assert saved["bot_id"] == "bot-abc"
        assert saved["bot_error"] is None
        assert saved["bot_status"] == "joining"
        assert saved["transcription_provider"] == "recall_ai"
        assert saved["bot_enhancement_state"] == "done"

        monitor.run.assert_awaited_once_with("s1", "bot-abc", ANY)
        gateway.create_bot.assert_awaited_once_with(
            MEET_URL,
            "s1",
            transcription_provider="assembly_ai",
            bot_name=None,
            metadata=None,
        )

    def test_monitor_handle_removed_when_done(self, manager, gateway, make_bot) -> None:
        gateway.create_bot.return_value = make_bot("ready")

        async def scenario():
            await manager.enhance_session("s1", MEET_URL)
            await manager.active_monitor("s1").task
            await asyncio.sleep(0)
            return manager.active_monitor("s1")

        assert asyncio.run(scenario()) is None

    def test_succeeds_after_retry(self, manager, storage, gateway, make_bot) -> None:
        """A transient failure is retried."""
        gateway.create_bot.side_effect = [
            UpstreamTransportError("Recall.ai rate limit exceeded. Please try again later.", 429),
            make_bot("ready", bot_id="bot-2"),
        ]

        bot = asyncio.run(manager.enhance_session("s1", MEET_URL))

        assert bot.id == "bot-2"
        assert gateway.create_bot.await_count == 2
        assert storage.get_session("s1")["bot_id"] == "bot-2"


class TestEnhanceSessionFailure:
    """Tests for failed enhancements."""

    def test_fallback_after_exhausted_retries(self, manager, storage, gateway, monitor) -> None:
        """Three failures: no bot, last error saved, fallback provider."""
        # Arrange
        gateway.create_bot.side_effect = [
            UpstreamTransportError("first", 500),
            UpstreamTransportError("second", 500),
            UpstreamTransportError("Failed to create Recall bot: third", 503),
        ]

        # Act
        bot = asyncio.run(manager.enhance_session("s1", MEET_URL, max_attempts=3))

        # Assert
        assert bot is None
        assert gateway.create_bot.await_count == 3
        saved = storage.get_session("s1")
        assert saved["bot_id"] is None
        assert saved["bot_error"] == "Failed to create Recall bot: third"
        assert saved["transcription_provider"] == "deepgram"
        assert saved["meeting_platform"] == "google_meet"
        assert saved["bot_enhancement_state"] == "failed"
        monitor.run.assert_not_called()

    def test_unsupported_platform(self, manager, storage, gateway) -> None:
        """Unsupported URL never reaches the provider and persists nothing."""
        bot = asyncio.run(manager.enhance_session("s1", "https://example.com/meeting"))

        assert bot is None
        gateway.create_bot.assert_not_called()
        saved = storage.get_session("s1")
        assert saved.get("meeting_platform") is None
        assert saved.get("bot_error") is None
        assert saved.get("bot_enhancement_state") is None

    def test_unexpected_error_is_contained(self, manager, storage, gateway) -> None:
        """Non-transport errors are not retried and end in the fallback."""
        gateway.create_bot.side_effect = RuntimeError("bug")

        assert asyncio.run(manager.enhance_session("s1", MEET_URL)) is None
        assert gateway.create_bot.await_count == 1
        saved = storage.get_session("s1")
        assert saved["bot_error"] == "bug"
        assert saved["bot_enhancement_state"] == "failed"

    def test_retry_after_failed_enhancement(self, manager, storage, gateway, make_bot) -> None:
        """A failed enhancement releases the guard."""
        gateway.create_bot.side_effect = UpstreamTransportError("down")
        asyncio.run(manager.enhance_session("s1", MEET_URL, max_attempts=1))

        gateway.create_bot.side_effect = None
        gateway.create_bot.return_value = make_bot("ready", bot_id="bot-2")
        bot = asyncio.run(manager.enhance_session("s1", MEET_URL))

        assert bot.id == "bot-2"

    def test_save_failure_after_creation(self, manager, storage, gateway, monitor, make_bot) -> None:
        """Bot created but not saved: bot stopped, failure persisted, session can retry."""
        # Arrange
        gateway.create_bot.return_value = make_bot("ready", bot_id="bot-orphan")
        save = storage.update_session
        calls = []

        def flaky_update(session_id, updates):
            calls.append(updates)
            if len(calls) == 1:
                raise RuntimeError("firestore unavailable")
            return save(session_id, updates)

        # Act
        with patch.object(storage, "update_session", side_effect=flaky_update):
            bot = asyncio.run(manager.enhance_session("s1", MEET_URL))

        # Assert
        assert bot is None
        gateway.stop_bot.assert_awaited_once_with("bot-orphan")
        monitor.run.assert_not_called()
        saved = storage.get_session("s1")
        assert saved["bot_id"] is None
        assert saved["bot_error"] == "firestore unavailable"
        assert saved["transcription_provider"] == "deepgram"
        assert saved["bot_enhancement_state"] == "failed"

        gateway.create_bot.return_value = make_bot("ready", bot_id="bot-2")
        assert asyncio.run(manager.enhance_session("s1", MEET_URL)).id == "bot-2"

    def test_guard_released_when_nothing_can_be_saved(self, manager, storage, gateway, make_bot) -> None:
        """If even the fallback cannot be written, the guard does not stay in progress."""
        gateway.create_bot.return_value = make_bot("ready")

        with patch.object(storage, "update_session", side_effect=RuntimeError("firestore unavailable")):
            assert asyncio.run(manager.enhance_session("s1", MEET_URL)) is None

        assert storage.get_session("s1")["bot_enhancement_state"] == "failed"
        assert storage.claim_enhancement("s1") is True


class TestEnhancementGuard:
    """Tests for the double-enhancement guard."""

    def test_second_enhancement_skipped(self, manager, storage, gateway, make_bot) -> None:
        """While one enhancement holds the guard, another does not create a bot."""
        # Arrange
        assert storage.claim_enhancement("s1") is True

        # Act
        bot = asyncio.run(manager.enhance_session("s1", MEET_URL))

        # Assert
        assert bot is None
        gateway.create_bot.assert_not_called()

    def test_concurrent_enhancements_create_one_bot(self, manager, gateway, make_bot) -> None:
        """Two simultaneous calls (double click) create a single bot."""
        gateway.create_bot.return_value = make_bot("ready")

        async def scenario():
            return await asyncio.gather(
                manager.enhance_session("s1", MEET_URL),
                manager.enhance_session("s1", MEET_URL),
            )

        results = asyncio.run(scenario())

        assert sum(1 for r in results if r is not None) == 1
        assert gateway.create_bot.await_count == 1

    def test_guard_disabled(self, storage, gateway, config, monitor, make_bot) -> None:
        config.enhancement_guard = False
        manager = BotSessionManager(storage, gateway, config, monitor=monitor)
        gateway.create_bot.return_value = make_bot("ready")

        asyncio.run(manager.enhance_session("s1", MEET_URL))
        asyncio.run(manager.enhance_session("s1", MEET_URL))

        assert gateway.create_bot.await_count == 2


class TestStopSessionBot:
    """Tests for stop_session_bot."""

    def test_stop_cancels_monitor(self, storage, gateway, config, make_bot) -> None:
        """Stopping preempts the monitor and calls stop_bot once."""
        # Arrange
        gateway.create_bot.return_value = make_bot("ready", bot_id="bot-abc")
        gateway.get_bot.return_value = make_bot("joining_call", bot_id="bot-abc")
        monitor = StatusMonitor(storage, gateway, poll_interval=10.0, timeout=60.0)
        manager = BotSessionManager(storage, gateway, config, monitor=monitor)

        async def scenario():
            await manager.enhance_session("s1", MEET_URL)
            handle = manager.active_monitor("s1")
            stopped = await manager.stop_session_bot("s1")
            return stopped, await handle.task

        # Act
        stopped, outcome = asyncio.run(scenario())

        # Assert
        assert stopped is True
        assert outcome is MonitorOutcome.CANCELLED
        gateway.stop_bot.assert_awaited_once_with("bot-abc")
        gateway.get_bot.assert_not_called()
        assert storage.get_session("s1")["bot_status"] == "cancelled"

    def test_no_bot(self, manager, gateway) -> None:
        assert asyncio.run(manager.stop_session_bot("s1")) is False
        gateway.stop_bot.assert_not_called()

    def test_unknown_session(self, manager) -> None:
        assert asyncio.run(manager.stop_session_bot("missing")) is False

    def test_stop_failure_propagates(self, manager, storage, gateway) -> None:
        storage.update_session("s1", {"bot_id": "bot-1", "bot_status": "in_call"})
        gateway.stop_bot.side_effect = UpstreamTransportError("Failed to stop bot: boom", 500)

        with pytest.raises(UpstreamTransportError):
            asyncio.run(manager.stop_session_bot("s1"))

        assert storage.get_session("s1")["bot_status"] == "in_call"

    def test_refused_stop_keeps_monitor(self, storage, gateway, config, make_bot) -> None:
        """When the provider refuses the stop, the bot stays monitored."""
        # Arrange
        async def wait_for_cancel(session_id, bot_id, cancel_event):
            await cancel_event.wait()
            return MonitorOutcome.CANCELLED

        monitor = MagicMock()
        monitor.run = AsyncMock(side_effect=wait_for_cancel)
        manager = BotSessionManager(storage, gateway, config, monitor=monitor)
        gateway.create_bot.return_value = make_bot("ready", bot_id="bot-abc")
        gateway.stop_bot.side_effect = UpstreamTransportError("Failed to stop bot: boom", 500)

        async def scenario():
            await manager.enhance_session("s1", MEET_URL)
            handle = manager.active_monitor("s1")
            with pytest.raises(UpstreamTransportError):
                await manager.stop_session_bot("s1")
            still_watching = not handle.cancel_event.is_set() and manager.active_monitor("s1") is handle
            handle.cancel()
            await handle.task
            return still_watching

        # Act / Assert
        assert asyncio.run(scenario()) is True
        assert storage.get_session("s1")["bot_status"] == "joining"
