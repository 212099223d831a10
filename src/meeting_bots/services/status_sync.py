"""
Bot status reconciliation.

Fetches the provider's current view of a session's bot and merges it into
the session row. Used by the manual sync endpoint, the webhook handlers and
the CLI sweep. Safe to call any number of times.
"""

import asyncio
import logging
from typing import Any

from meeting_bots.api.storage import SessionStorage
from meeting_bots.config import BotServiceConfig
from meeting_bots.errors import ReconciliationNoOp, UpstreamTransportError
from meeting_bots.models.session import Session, SyncResult
from meeting_bots.providers.base import BotGateway

from .status_merge import BotObservation, merge_observation
from .usage import calculate_usage

logger = logging.getLogger(__name__)


def needs_sync(row: dict[str, Any]) -> bool:
    """Session has a bot that is still running or has no usage recorded yet."""
    session = Session.from_dict(row)
    if not session.bot_id:
        return False
    if session.status is None or not session.status.is_terminal:
        return True
    return not session.bot_recording_minutes


def _bot_id(session: dict[str, Any]) -> str:
    bot_id = session.get("bot_id")
    if not bot_id:
        raise ReconciliationNoOp(session["id"])
    return bot_id


class BotStatusSyncService:
    """Reconciles session rows with the bot provider."""

    def __init__(
        self,
        storage: SessionStorage,
        gateway: BotGateway,
        config: BotServiceConfig,
    ) -> None:
        self.storage = storage
        self.gateway = gateway
        self.config = config

    async def sync_one(self, session_id: str) -> SyncResult:
        """
        Reconcile one session with its bot's remote state.

        Args:
            session_id: Session to sync

        Returns:
            SyncResult with status ``updated``, ``up-to-date``, ``skipped`` or
            ``error``
        """
        session = await asyncio.to_thread(self.storage.get_session, session_id)
        if session is None:
            return SyncResult(session_id=session_id, status="error", error="Session not found")

        previous = session.get("bot_status")
        try:
            bot_id = _bot_id(session)
        except ReconciliationNoOp as e:
            return SyncResult(
                session_id=session_id,
                status="skipped",
                reason=e.reason,
                title=session.get("title"),
            )

        try:
            bot = await self.gateway.get_bot(bot_id)
        except UpstreamTransportError as e:
            logger.error("Error syncing bot %s for session %s: %s", bot_id, session_id, e)
            return SyncResult(
                session_id=session_id,
                status="error",
                bot_status=previous,
                error=e.message,
                title=session.get("title"),
            )

        usage = calculate_usage(bot, self.config.cost_per_minute)
        observation = BotObservation.from_bot(bot, usage.to_fields())

        changes = await asyncio.to_thread(
            self.storage.transact_session,
            session_id,
            lambda current: merge_observation(current, observation),
        )
        if changes is None:
            return SyncResult(session_id=session_id, status="error", error="Session not found")

        if changes:
            logger.info(
                "Synced session %s: %s -> %s (%s min)",
                session_id, previous, changes.get("bot_status", previous), usage.billable_minutes,
            )

        return SyncResult(
            session_id=session_id,
            status="updated" if changes else "up-to-date",
            updated=bool(changes),
            bot_status=changes.get("bot_status", previous),
            previous_status=previous,
            billable_minutes=usage.billable_minutes,
            cost=usage.cost,
            title=session.get("title"),
        )

    async def sync_all(
        self,
        user: str | None = None,
        organization_id: str | None = None,
        limit: int | None = None,
    ) -> list[SyncResult]:
        """
        Reconcile every session whose bot is still running or has no usage.

        Sessions are synced one after another, newest first; a failure on
        one session is reported in its result and does not stop the sweep.

        Args:
            user: Only this user's sessions
            organization_id: Only this organization's sessions
            limit: Maximum number of sessions (default from config)

        Returns:
            One SyncResult per session
        """
        sessions = await asyncio.to_thread(
            self.storage.list_sessions,
            user=user,
            organization_id=organization_id,
            with_bot=True,
            where=needs_sync,
            limit=limit or self.config.sync_all_limit,
        )
        logger.info("Syncing bot status for %s session(s)", len(sessions))

        results = []
        for session in sessions:
            try:
                results.append(await self.sync_one(session["id"]))
            except Exception as e:
                logger.exception("Error syncing session %s", session["id"])
                results.append(SyncResult(session_id=session["id"], status="error", error=str(e)))
        return results
