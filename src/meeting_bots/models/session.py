"""
Session data models.

A session is owned by the session-creation collaborator. This service
reads it and writes only the bot-related subset of its fields.
"""

from dataclasses import asdict, dataclass
from typing import Any

from .bot import BotStatus

# Fields this service is allowed to write on a session row
BOT_FIELDS = (
    "meeting_url",
    "meeting_platform",
    "bot_id",
    "bot_status",
    "bot_error",
    "bot_status_observed_at",
    "transcription_provider",
    "bot_enhancement_state",
    "recording_started_at",
    "recording_ended_at",
    "recording_duration_seconds",
    "bot_recording_minutes",
    "bot_billable_amount",
)


@dataclass
class Session:
    """Session record as seen by the bot lifecycle."""

    id: str
    user: str | None = None
    organization_id: str | None = None
    title: str | None = None
    meeting_url: str | None = None
    meeting_platform: str | None = None
    bot_id: str | None = None
    bot_status: str | None = None
    bot_error: str | None = None
    bot_status_observed_at: str | None = None
    transcription_provider: str | None = None
    bot_enhancement_state: str | None = None
    recording_started_at: str | None = None
    recording_ended_at: str | None = None
    recording_duration_seconds: int = 0
    bot_recording_minutes: int = 0
    bot_billable_amount: float = 0.0
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def status(self) -> BotStatus | None:
        return BotStatus.parse(self.bot_status)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """
        Create Session from a storage dictionary.

        Unknown keys are ignored so the owning collaborator can keep its own
        fields on the same row.
        """
        return cls(
            id=data["id"],
            user=data.get("user"),
            organization_id=data.get("organization_id"),
            title=data.get("title"),
            meeting_url=data.get("meeting_url"),
            meeting_platform=data.get("meeting_platform"),
            bot_id=data.get("bot_id"),
            bot_status=data.get("bot_status"),
            bot_error=data.get("bot_error"),
            bot_status_observed_at=data.get("bot_status_observed_at"),
            transcription_provider=data.get("transcription_provider"),
            bot_enhancement_state=data.get("bot_enhancement_state"),
            recording_started_at=data.get("recording_started_at"),
            recording_ended_at=data.get("recording_ended_at"),
            recording_duration_seconds=data.get("recording_duration_seconds") or 0,
            bot_recording_minutes=data.get("bot_recording_minutes") or 0,
            bot_billable_amount=data.get("bot_billable_amount") or 0.0,
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def bot_fields(self) -> dict[str, Any]:
        """The bot-related subset of the session, keyed by session_id."""
        data = self.to_dict()
        fields = {"session_id": self.id}
        fields.update({key: data[key] for key in BOT_FIELDS})
        return fields


@dataclass
class SyncResult:
    """Outcome of reconciling one session against the provider."""

    session_id: str
    status: str  # updated | up-to-date | skipped | error
    updated: bool = False
    bot_status: str | None = None
    previous_status: str | None = None
    billable_minutes: int | None = None
    cost: float | None = None
    title: str | None = None
    error: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, dropping empty optional fields."""
        return {key: value for key, value in asdict(self).items() if value is not None}
