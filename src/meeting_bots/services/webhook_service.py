"""
Webhook event handling service.

Routes Recall.ai webhook events to the status reconciler:
- Bot lifecycle events (``bot.*``) and recording events (``recording.*``)
  trigger a sync of the session's bot
- Realtime transcript and participant events are acknowledged and ignored
"""

import logging
from typing import Any

from .status_sync import BotStatusSyncService

logger = logging.getLogger(__name__)

SYNC_EVENT_PREFIXES = ("bot.", "recording.")
IGNORED_EVENT_PREFIXES = ("transcript.", "participant_events.")


def session_id_from_event(event_data: dict[str, Any]) -> str | None:
    """Session id stored in the bot metadata of a Recall.ai event."""
    data = event_data.get("data") or {}
    bot = data.get("bot") or {}
    metadata = bot.get("metadata") or {}
    session_id = metadata.get("session_id")
    return str(session_id) if session_id else None


class BotWebhookService:
    """Service for handling webhook events from the bot provider."""

    def __init__(self, sync_service: BotStatusSyncService) -> None:
        self.sync_service = sync_service

    async def handle_session_event(self, session_id: str, event_data: dict[str, Any]) -> dict[str, Any]:
        """
        Handle an event delivered to a session's webhook.

        Args:
            session_id: Session from the webhook URL
            event_data: Webhook event payload

        Returns:
            dict: Processing summary

        Raises:
            ValueError: If event type is missing
        """
        event = event_data.get("event")
        if not event:
            raise ValueError("Missing event type in webhook payload")

        if event.startswith(SYNC_EVENT_PREFIXES):
            logger.info("Webhook %s for session %s", event, session_id)
            result = await self.sync_service.sync_one(session_id)
            return {"status": "processed", "event": event, "sync": result.to_dict()}

        if not event.startswith(IGNORED_EVENT_PREFIXES):
            logger.info("Unhandled webhook event %s for session %s", event, session_id)
        return {"status": "ignored", "event": event}

    async def handle_status_event(self, event_data: dict[str, Any]) -> dict[str, Any]:
        """
        Handle an event delivered to the global status webhook.

        The session is identified by ``data.bot.metadata.session_id``.

        Raises:
            ValueError: If event type is missing
        """
        event = event_data.get("event")
        if not event:
            raise ValueError("Missing event type in webhook payload")

        session_id = session_id_from_event(event_data)
        if not session_id:
            logger.warning("Webhook %s has no session_id in bot metadata", event)
            return {"status": "ignored", "event": event, "reason": "No session_id in bot metadata"}

        return await self.handle_session_event(session_id, event_data)
