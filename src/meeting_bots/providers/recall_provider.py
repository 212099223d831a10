"""
Recall.ai bot gateway.

Thin typed wrapper over the Recall.ai bot API: create, fetch, stop, and
transcript retrieval. No state and no retries.
"""

import asyncio
import logging
from typing import Any

import requests

from meeting_bots.config import BotServiceConfig
from meeting_bots.errors import UpstreamTransportError
from meeting_bots.models.bot import Bot

from .base import BotGateway, ProviderType

logger = logging.getLogger(__name__)

# Realtime events forwarded to the per-session webhook
REALTIME_EVENTS = ["transcript.data", "transcript.partial_data"]

# Keep the bot in quiet calls and long waiting rooms; tens of minutes to hours
AUTOMATIC_LEAVE = {
    "waiting_room_timeout": 3600,
    "noone_joined_timeout": 3600,
    "everyone_left_timeout": {
        "timeout": 600,
        "activate_after": 300,
    },
    "in_call_not_recording_timeout": 7200,
    "recording_permission_denied_timeout": 300,
    "silence_detection": {
        "timeout": 7200,
        "activate_after": 3600,
    },
    "bot_detection": {
        "using_participant_events": {
            "timeout": 1800,
            "activate_after": 3600,
        },
    },
}

_DEEPGRAM_STREAMING = {
    "deepgram_streaming": {
        "model": "nova-3",
        "language": "multi",
        "smart_format": "true",
        "punctuate": "true",
        "profanity_filter": "false",
        "diarize": "true",
        "utterances": "true",
        "interim_results": "true",
    }
}

TRANSCRIPTION_PROVIDERS: dict[str, dict[str, Any]] = {
    "deepgram": _DEEPGRAM_STREAMING,
    "assembly_ai": {"assembly_ai_streaming": {}},
    "speechmatics": {"speechmatics_streaming": {}},
    "aws_transcribe": {
        "aws_transcribe_streaming": {
            "language_identification": True,
            "language_options": "en-US,es-US,fr-FR,de-DE,ja-JP,ko-KR,zh-CN,pt-BR,it-IT,hi-IN",
            "partial_results_stability": "high",
            "show_speaker_label": True,
        }
    },
}


def transcription_provider_config(provider: str | None) -> dict[str, Any]:
    """Recall ``recording_config.transcript.provider`` block for a backend name."""
    return TRANSCRIPTION_PROVIDERS.get(provider or "", _DEEPGRAM_STREAMING)


def _error_detail(response: requests.Response) -> str:
    """Best-effort error message from a provider response body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason or ""
    if isinstance(body, dict):
        for key in ("message", "detail", "error"):
            if body.get(key):
                return str(body[key])
    return response.text or response.reason or ""


def _json_body(response: requests.Response, context: str) -> Any:
    """Decoded JSON body of a successful response."""
    try:
        return response.json()
    except ValueError as e:
        raise UpstreamTransportError(
            f"{context}: invalid JSON response", response.status_code, response.text
        ) from e


def _bot_body(response: requests.Response, context: str) -> Bot:
    """Bot parsed from a successful response."""
    body = _json_body(response, context)
    try:
        return Bot.from_api(body)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise UpstreamTransportError(
            f"{context}: unexpected bot payload", response.status_code, response.text
        ) from e


class RecallBotGateway(BotGateway):
    """
    Bot gateway using the Recall.ai v1 API.

    Recall.ai bots join video meetings (Zoom, Google Meet, Teams) to record
    and stream transcripts back to a webhook.
    """

    def __init__(
        self,
        config: BotServiceConfig,
        session: requests.Session | None = None,
    ):
        """
        Initialize the Recall gateway.

        Args:
            config: Service configuration (API key, region, webhook base)
            session: Optional requests session (shared connection pool)
        """
        self._config = config
        self._base_url = config.recall_base_url
        self._session = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"Token {config.recall_api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    @property
    def name(self) -> str:
        return "Recall.ai"

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.RECALL

    # =========================================================================
    # HTTP
    # =========================================================================

    def _request(self, method: str, path: str, payload: dict | None = None) -> requests.Response:
        """Issue one request; transport failures become UpstreamTransportError."""
        if not self._config.recall_api_key:
            raise UpstreamTransportError("RECALL_AI_API_KEY not configured")

        url = f"{self._base_url}{path}"
        try:
            return self._session.request(
                method,
                url,
                json=payload,
                timeout=self._config.request_timeout,
            )
        except requests.RequestException as e:
            raise UpstreamTransportError(f"Recall.ai request failed: {e}") from e

    async def _call(self, method: str, path: str, payload: dict | None = None) -> requests.Response:
        return await asyncio.to_thread(self._request, method, path, payload)

    # =========================================================================
    # BOTS
    # =========================================================================

    def build_create_payload(
        self,
        meeting_url: str,
        session_id: str,
        transcription_provider: str | None = None,
        bot_name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Build the ``POST /bot/`` request body.

        All metadata values are sent as strings; ``session_id`` and
        ``source`` are always present.
        """
        bot_metadata = {"session_id": str(session_id), "source": "meeting_bots"}
        for key, value in (metadata or {}).items():
            if value is not None:
                bot_metadata[key] = str(value)

        webhook_url = f"{self._config.webhook_base_url}/{session_id}"

        return {
            "meeting_url": meeting_url,
            "bot_name": bot_name or self._config.bot_name,
            "metadata": bot_metadata,
            "recording_config": {
                "transcript": {
                    "provider": transcription_provider_config(
                        transcription_provider or self._config.transcription_provider
                    ),
                },
                "start_recording_on": "call_join",
                "video_mixed_layout": "audio_only",
                "include_bot_in_recording": {"audio": False},
                "realtime_endpoints": [
                    {
                        "type": "webhook",
                        "url": webhook_url,
                        "events": list(REALTIME_EVENTS),
                    }
                ],
            },
            "automatic_leave": AUTOMATIC_LEAVE,
        }

    async def create_bot(
        self,
        meeting_url: str,
        session_id: str,
        transcription_provider: str | None = None,
        bot_name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Bot:
        """
        Create a bot to join a meeting.

        Args:
            meeting_url: The meeting URL to join
            session_id: Local session the bot records for
            transcription_provider: Streaming backend (deepgram, assembly_ai, ...)
            bot_name: Display name for the bot
            metadata: Extra metadata stored on the bot

        Returns:
            Bot: The created bot

        Raises:
            UpstreamTransportError: If bot creation fails
        """
        payload = self.build_create_payload(
            meeting_url,
            session_id,
            transcription_provider=transcription_provider,
            bot_name=bot_name,
            metadata=metadata,
        )

        response = await self._call("POST", "/bot/", payload)

        if not response.ok:
            detail = _error_detail(response)
            if response.status_code == 401:
                message = "Recall.ai API authentication failed. Please check your API key."
            elif response.status_code == 400:
                message = f"Invalid request to Recall.ai: {detail}"
            elif response.status_code == 429:
                message = "Recall.ai rate limit exceeded. Please try again later."
            else:
                message = f"Failed to create Recall bot: {detail}"
            logger.error(
                "Recall bot creation failed for session %s: %s %s",
                session_id, response.status_code, detail,
            )
            raise UpstreamTransportError(message, response.status_code, response.text)

        bot = _bot_body(response, "Failed to create Recall bot")
        logger.info("Recall bot %s created for session %s", bot.id, session_id)
        return bot

    async def get_bot(self, bot_id: str) -> Bot:
        """
        Get the current state of a bot.

        Raises:
            UpstreamTransportError: If the bot cannot be fetched
        """
        response = await self._call("GET", f"/bot/{bot_id}/")

        if not response.ok:
            raise UpstreamTransportError(
                f"Failed to get bot: {_error_detail(response)}",
                response.status_code,
                response.text,
            )

        return _bot_body(response, "Failed to get bot")

    async def stop_bot(self, bot_id: str) -> None:
        """
        Make a bot leave the meeting it's currently in.

        A 404 means the bot is already gone and is not treated as an error.

        Raises:
            UpstreamTransportError: On transport failure or other non-2xx
        """
        response = await self._call("POST", f"/bot/{bot_id}/leave_call/")

        if response.status_code == 404:
            logger.warning("Bot %s not found on stop - it may have already left", bot_id)
            return

        if not response.ok:
            raise UpstreamTransportError(
                f"Failed to stop bot: {_error_detail(response)}",
                response.status_code,
                response.text,
            )

        logger.info("Bot %s is leaving the meeting", bot_id)

    async def get_transcript(self, transcript_id: str) -> dict[str, Any]:
        """
        Fetch transcript metadata (including its download URL).

        Raises:
            UpstreamTransportError: If the transcript cannot be fetched
        """
        response = await self._call("GET", f"/transcript/{transcript_id}/")

        if not response.ok:
            raise UpstreamTransportError(
                f"Failed to get transcript: {_error_detail(response)}",
                response.status_code,
                response.text,
            )

        return _json_body(response, "Failed to get transcript")
