"""
Bot session management.

Handles the lifecycle of a session's recording bot:
- Attaching a bot to a session (with retries and fallback)
- Starting and cancelling the join monitor
- Stopping the bot when the user ends the session
"""

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from typing import Any

from meeting_bots.api.storage import (
    ENHANCEMENT_DONE,
    ENHANCEMENT_FAILED,
    ENHANCEMENT_IN_PROGRESS,
    SessionStorage,
)
from meeting_bots.config import BotServiceConfig
from meeting_bots.errors import UnsupportedPlatformError, UpstreamTransportError
from meeting_bots.models.bot import Bot, BotStatus
from meeting_bots.providers.base import BotGateway
from meeting_bots.utils.url_validator import Platform, require_platform

from .status_merge import BotObservation, merge_observation
from .status_monitor import MonitorOutcome, StatusMonitor

logger = logging.getLogger(__name__)


@dataclass
class MonitorHandle:
    """A running join monitor."""

    session_id: str
    bot_id: str
    task: asyncio.Task
    cancel_event: asyncio.Event

    def cancel(self) -> None:
        self.cancel_event.set()


class BotSessionManager:
    """Attaches recording bots to sessions and tracks their monitors."""

    def __init__(
        self,
        storage: SessionStorage,
        gateway: BotGateway,
        config: BotServiceConfig,
        monitor: StatusMonitor | None = None,
    ) -> None:
        """
        Initialize the session manager.

        Args:
            storage: Session storage
            gateway: Bot provider gateway
            config: Service configuration
            monitor: Join monitor (defaults to one built from config)
        """
        self.storage = storage
        self.gateway = gateway
        self.config = config
        self.monitor = monitor or StatusMonitor(
            storage,
            gateway,
            poll_interval=config.monitor_poll_interval,
            timeout=config.monitor_timeout,
        )
        self._monitors: dict[str, MonitorHandle] = {}

    async def enhance_session(
        self,
        session_id: str,
        meeting_url: str,
        max_attempts: int | None = None,
        bot_name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Bot | None:
        """
        Attach a recording bot to a session.

        Never raises: every failure ends up in the session row (``bot_error``
        and the fallback transcription provider) and None is returned.

        Args:
            session_id: Session to enhance
            meeting_url: Meeting the bot should join
            max_attempts: Bot creation attempts (default from config)
            bot_name: Display name for the bot
            metadata: Extra metadata stored on the bot

        Returns:
            The created Bot, or None
        """
        try:
            return await self._enhance(session_id, meeting_url, max_attempts, bot_name, metadata)
        except Exception:
            logger.exception("Unexpected error enhancing session %s", session_id)
            return None

    async def _enhance(
        self,
        session_id: str,
        meeting_url: str,
        max_attempts: int | None,
        bot_name: str | None,
        metadata: dict[str, Any] | None,
    ) -> Bot | None:
        try:
            platform = require_platform(meeting_url)
        except UnsupportedPlatformError as e:
            logger.warning("Session %s not enhanced: %s", session_id, e)
            return None

        claimed = False
        if self.config.enhancement_guard:
            claimed = await asyncio.to_thread(self.storage.claim_enhancement, session_id)
            if not claimed:
                logger.info("Session %s already has a bot enhancement; skipping", session_id)
                return None

        try:
            return await self._attach_bot(
                session_id, meeting_url, platform, max_attempts, bot_name, metadata
            )
        finally:
            if claimed:
                await self._release_claim(session_id)

    async def _attach_bot(
        self,
        session_id: str,
        meeting_url: str,
        platform: Platform,
        max_attempts: int | None,
        bot_name: str | None,
        metadata: dict[str, Any] | None,
    ) -> Bot | None:
        attempts = max(1, max_attempts or self.config.create_max_attempts)
        last_error: Exception | None = None

        for attempt in range(attempts):
            try:
                bot = await self.gateway.create_bot(
                    meeting_url,
                    session_id,
                    transcription_provider=self.config.transcription_provider,
                    bot_name=bot_name,
                    metadata=metadata,
                )
            except UpstreamTransportError as e:
                last_error = e
                logger.warning(
                    "Bot creation attempt %s/%s failed for session %s: %s",
                    attempt + 1, attempts, session_id, e,
                )
                if attempt + 1 < attempts:
                    await asyncio.sleep(self.config.create_retry_delay * (attempt + 1))
                continue
            except Exception as e:
                # Only transport errors are retried
                logger.exception("Unexpected error creating bot for session %s", session_id)
                last_error = e
                break

            try:
                await asyncio.to_thread(self.storage.update_session, session_id, {
                    "meeting_url": meeting_url,
                    "meeting_platform": platform.value,
                    "bot_id": bot.id,
                    "bot_status": BotStatus.JOINING.value,
                    "bot_error": None,
                    "bot_status_observed_at": bot.observed_at,
                    "transcription_provider": self.config.bot_transcription_provider_label,
                    "bot_enhancement_state": ENHANCEMENT_DONE,
                })
            except Exception as e:
                logger.exception("Failed to save bot %s on session %s", bot.id, session_id)
                await self._discard_bot(bot.id)
                last_error = e
                break

            logger.info(
                "Bot %s attached to session %s (%s)", bot.id, session_id, platform.value
            )
            self._start_monitor(session_id, bot.id)
            return bot

        logger.error(
            "Bot creation failed after %s attempts for session %s: %s",
            attempts, session_id, last_error,
        )
        await asyncio.to_thread(self.storage.update_session, session_id, {
            "meeting_url": meeting_url,
            "meeting_platform": platform.value,
            "bot_error": str(last_error),
            "transcription_provider": self.config.fallback_transcription_provider,
            "bot_enhancement_state": ENHANCEMENT_FAILED,
        })
        return None

    async def _discard_bot(self, bot_id: str) -> None:
        """Stop a bot that could not be attached to its session."""
        try:
            await self.gateway.stop_bot(bot_id)
        except UpstreamTransportError as e:
            logger.warning("Failed to stop unattached bot %s: %s", bot_id, e)

    async def _release_claim(self, session_id: str) -> None:
        """Mark an enhancement still in progress as failed."""
        def release(current: dict[str, Any]) -> dict[str, Any]:
            if current.get("bot_enhancement_state") == ENHANCEMENT_IN_PROGRESS:
                return {"bot_enhancement_state": ENHANCEMENT_FAILED}
            return {}

        try:
            await asyncio.to_thread(self.storage.transact_session, session_id, release)
        except Exception:
            logger.exception("Failed to release enhancement guard for session %s", session_id)

    async def stop_session_bot(self, session_id: str) -> bool:
        """
        Stop a session's bot and its join monitor.

        Returns:
            False if the session has no bot

        Raises:
            UpstreamTransportError: If the provider refuses the stop
        """
        session = await asyncio.to_thread(self.storage.get_session, session_id)
        if not session or not session.get("bot_id"):
            return False

        bot_id = session["bot_id"]
        await self.gateway.stop_bot(bot_id)

        handle = self._monitors.get(session_id)
        if handle is not None:
            handle.cancel()

        observation = BotObservation(status=BotStatus.CANCELLED, remote=False)
        await asyncio.to_thread(
            self.storage.transact_session,
            session_id,
            lambda current: merge_observation(current, observation),
        )
        logger.info("Stopped bot %s for session %s", bot_id, session_id)
        return True

    def active_monitor(self, session_id: str) -> MonitorHandle | None:
        """Handle of the session's running monitor, if any."""
        return self._monitors.get(session_id)

    def _start_monitor(self, session_id: str, bot_id: str) -> MonitorHandle:
        previous = self._monitors.get(session_id)
        if previous is not None:
            previous.cancel()

        cancel_event = asyncio.Event()
        task = asyncio.create_task(
            self.monitor.run(session_id, bot_id, cancel_event),
            name=f"bot-monitor-{bot_id}",
        )
        handle = MonitorHandle(session_id, bot_id, task, cancel_event)
        self._monitors[session_id] = handle
        task.add_done_callback(partial(self._monitor_done, handle))
        return handle

    def _monitor_done(self, handle: MonitorHandle, task: asyncio.Task) -> None:
        if self._monitors.get(handle.session_id) is handle:
            del self._monitors[handle.session_id]

        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Monitor for bot %s crashed", handle.bot_id, exc_info=error)
            return
        outcome: MonitorOutcome = task.result()
        logger.info("Monitor for bot %s finished: %s", handle.bot_id, outcome.value)
