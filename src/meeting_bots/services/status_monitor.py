"""
Bot join monitor.

Polls a freshly created bot until it has joined the call, failed, or run out
of time. Started fire-and-forget by the session manager; a cancellation
event lets a user "end session" preempt the poll loop.
"""

import asyncio
import logging
from enum import Enum

from meeting_bots.api.storage import SessionStorage
from meeting_bots.errors import BotJoinFailedError, BotJoinTimeoutError, UpstreamTransportError
from meeting_bots.models.bot import Bot, BotStatus
from meeting_bots.providers.base import BotGateway

from .status_merge import BotObservation, merge_observation

logger = logging.getLogger(__name__)


class MonitorOutcome(Enum):
    """How a monitor run ended."""

    JOINED = "joined"
    FAILED = "failed"
    ENDED = "ended"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class StatusMonitor:
    """Watches one bot through its join phase."""

    def __init__(
        self,
        storage: SessionStorage,
        gateway: BotGateway,
        poll_interval: float = 5.0,
        timeout: float = 300.0,
        max_polls: int | None = None,
    ):
        """
        Initialize the monitor.

        Args:
            storage: Session storage
            gateway: Bot provider gateway
            poll_interval: Seconds to wait before each poll
            timeout: Wall-clock budget for the join phase (seconds)
            max_polls: Optional cap on the number of polls
        """
        self.storage = storage
        self.gateway = gateway
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.max_polls = max_polls

    async def run(
        self,
        session_id: str,
        bot_id: str,
        cancel_event: asyncio.Event | None = None,
    ) -> MonitorOutcome:
        """
        Poll ``bot_id`` until it joins, fails, or times out.

        Every write is merged into the session row, so a monitor never
        regresses a terminal status written by the reconciler.

        Args:
            session_id: Session the bot belongs to
            bot_id: Bot to watch
            cancel_event: Set to stop monitoring without writing

        Returns:
            MonitorOutcome
        """
        cancel_event = cancel_event or asyncio.Event()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        polls = 0

        logger.info("Monitoring bot %s for session %s", bot_id, session_id)

        while True:
            if await self._wait(cancel_event):
                logger.info("Monitoring of bot %s cancelled", bot_id)
                return MonitorOutcome.CANCELLED

            polls += 1
            try:
                bot = await self.gateway.get_bot(bot_id)
            except UpstreamTransportError as e:
                logger.warning("Error polling bot %s (session %s): %s", bot_id, session_id, e)
                bot = None

            if cancel_event.is_set():
                logger.info("Monitoring of bot %s cancelled", bot_id)
                return MonitorOutcome.CANCELLED

            if bot is not None:
                logger.debug("Bot %s status: %s (%s)", bot_id, bot.status.value, bot.raw_status)
                outcome = await self._check(session_id, bot)
                if outcome is not None:
                    return outcome

            if loop.time() >= deadline or (self.max_polls and polls >= self.max_polls):
                await self._time_out(session_id, bot_id)
                return MonitorOutcome.TIMEOUT

    async def _wait(self, cancel_event: asyncio.Event) -> bool:
        """Sleep one poll interval; True if cancelled meanwhile."""
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            return False
        return True

    async def _check(self, session_id: str, bot: Bot) -> MonitorOutcome | None:
        """Persist a decisive observation and return the outcome, or None to keep polling."""
        status = bot.status

        if status is BotStatus.FAILED:
            error = BotJoinFailedError(bot.id, bot.status_message)
            logger.error("Bot %s failed to join meeting for session %s: %s", bot.id, session_id, error)
            await self._persist(session_id, BotObservation(
                status=BotStatus.FAILED,
                message=str(error),
                observed_at=bot.observed_at,
            ))
            return MonitorOutcome.FAILED

        if status.has_joined or status is BotStatus.PERMISSION_DENIED:
            logger.info("Bot %s joined the meeting (%s)", bot.id, bot.raw_status)
            await self._persist(session_id, BotObservation.from_bot(bot))
            return MonitorOutcome.JOINED

        if status.is_terminal:
            logger.info("Bot %s ended before joining (%s)", bot.id, bot.raw_status)
            await self._persist(session_id, BotObservation.from_bot(bot))
            return MonitorOutcome.ENDED

        return None

    async def _time_out(self, session_id: str, bot_id: str) -> None:
        error = BotJoinTimeoutError(bot_id, self.timeout)
        logger.error("Bot %s join timeout for session %s", bot_id, session_id)

        await self._persist(session_id, BotObservation(
            status=BotStatus.TIMEOUT,
            message=str(error),
            remote=False,
        ))

        try:
            await self.gateway.stop_bot(bot_id)
        except UpstreamTransportError as e:
            logger.warning("Failed to stop timed-out bot %s: %s", bot_id, e)

    async def _persist(self, session_id: str, observation: BotObservation) -> None:
        changes = await asyncio.to_thread(
            self.storage.transact_session,
            session_id,
            lambda current: merge_observation(current, observation),
        )
        if changes is None:
            logger.warning("Session %s not found while saving bot status", session_id)
        elif changes:
            logger.info("Session %s bot status -> %s", session_id, observation.status.value)
