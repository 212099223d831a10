"""
Bot gateway base classes and types.

Defines the contract that every recording-bot provider client implements.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from meeting_bots.models.bot import Bot
from meeting_bots.utils.url_validator import Platform, detect_platform


class ProviderType(Enum):
    """Supported recording-bot providers."""

    RECALL = "recall"


class BotGateway(ABC):
    """
    Abstract base class for recording-bot provider clients.

    Gateways are stateless request/response wrappers:
    - Creating bots for a meeting
    - Fetching current bot state
    - Asking a bot to leave
    - Fetching transcripts

    They never retry; every failure surfaces as UpstreamTransportError and
    callers choose their own retry policy.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g., 'Recall.ai')."""
        ...

    @property
    @abstractmethod
    def provider_type(self) -> ProviderType:
        """Provider type identifier."""
        ...

    @abstractmethod
    async def create_bot(
        self,
        meeting_url: str,
        session_id: str,
        transcription_provider: str | None = None,
        bot_name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Bot:
        """
        Create a bot that joins ``meeting_url`` on behalf of ``session_id``.

        Raises:
            UpstreamTransportError: If the provider rejects the request
        """
        ...

    @abstractmethod
    async def get_bot(self, bot_id: str) -> Bot:
        """
        Fetch the current state of a bot.

        Raises:
            UpstreamTransportError: If the bot cannot be fetched
        """
        ...

    @abstractmethod
    async def stop_bot(self, bot_id: str) -> None:
        """
        Ask a bot to leave its call. Does not wait for confirmation.

        Raises:
            UpstreamTransportError: On transport failure
        """
        ...

    async def get_transcript(self, transcript_id: str) -> dict[str, Any]:
        """
        Fetch transcript data.

        Override this method if the provider exposes transcripts.
        """
        raise NotImplementedError(f"{self.name} does not provide transcripts")

    @staticmethod
    def detect_platform(url: str | None) -> Platform | None:
        """Map a meeting URL to a platform. Pure, no network."""
        return detect_platform(url)
