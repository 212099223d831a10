"""
Bot data models.

A Bot is the local projection of a Recall.ai bot resource. The provider
drives every transition; this service only observes them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class BotStatus(Enum):
    """Local bot status, advanced by the status monitor and the reconciler."""

    CREATED = "created"
    JOINING = "joining"
    WAITING = "waiting"
    IN_CALL = "in_call"
    RECORDING = "recording"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    PERMISSION_DENIED = "permission_denied"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        """No further transition is expected from this status."""
        return self in TERMINAL_STATUSES

    @property
    def is_error(self) -> bool:
        """Status carries an error message in ``bot_error``."""
        return self in ERROR_STATUSES

    @property
    def has_joined(self) -> bool:
        """Bot reached the call (or its waiting room)."""
        return self in JOINED_STATUSES

    @classmethod
    def parse(cls, value: "str | BotStatus | None") -> "BotStatus | None":
        """Parse a persisted status value; None or unrecognised values give None."""
        if value is None or isinstance(value, BotStatus):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


TERMINAL_STATUSES = frozenset({
    BotStatus.COMPLETED,
    BotStatus.FAILED,
    BotStatus.TIMEOUT,
    BotStatus.CANCELLED,
})

ERROR_STATUSES = frozenset({
    BotStatus.FAILED,
    BotStatus.TIMEOUT,
    BotStatus.PERMISSION_DENIED,
})

JOINED_STATUSES = frozenset({
    BotStatus.WAITING,
    BotStatus.IN_CALL,
    BotStatus.RECORDING,
})

# Recall.ai status codes -> local status
_REMOTE_STATUS_MAP: dict[str, BotStatus] = {
    "ready": BotStatus.CREATED,
    "created": BotStatus.CREATED,
    "joining_call": BotStatus.JOINING,
    "joining": BotStatus.JOINING,
    "in_waiting_room": BotStatus.WAITING,
    "in_call": BotStatus.IN_CALL,
    "in_call_not_recording": BotStatus.IN_CALL,
    "in_call_recording": BotStatus.RECORDING,
    "recording_permission_allowed": BotStatus.RECORDING,
    "done": BotStatus.COMPLETED,
    "call_ended": BotStatus.COMPLETED,
    "completed": BotStatus.COMPLETED,
    "recording_done": BotStatus.COMPLETED,
    "error": BotStatus.FAILED,
    "fatal": BotStatus.FAILED,
    "failed": BotStatus.FAILED,
    "recording_permission_denied": BotStatus.PERMISSION_DENIED,
}


def map_remote_status(code: str | None) -> BotStatus:
    """
    Map a Recall.ai status code onto the local BotStatus.

    Args:
        code: Provider status code (e.g. 'in_call_recording', 'fatal')

    Returns:
        BotStatus, UNKNOWN for codes this service does not track
    """
    if not code:
        return BotStatus.UNKNOWN
    return _REMOTE_STATUS_MAP.get(code.strip().lower(), BotStatus.UNKNOWN)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp from the provider into an aware datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class StatusChange:
    """One entry of a bot's ``status_changes`` history."""

    code: str
    created_at: str | None = None
    message: str | None = None
    sub_code: str | None = None

    @property
    def timestamp(self) -> datetime | None:
        return parse_timestamp(self.created_at)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StatusChange":
        return cls(
            code=data.get("code") or "unknown",
            created_at=data.get("created_at"),
            message=data.get("message"),
            sub_code=data.get("sub_code"),
        )


@dataclass
class Bot:
    """
    Local projection of a remote bot.

    ``status`` is the mapped local status; ``raw_status`` keeps the provider
    code it was mapped from.
    """

    id: str
    status: BotStatus
    raw_status: str | None = None
    meeting_url: str | None = None
    recording_id: str | None = None
    status_changes: list[StatusChange] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    completed_at: str | None = None
    created_at: str | None = None

    @property
    def latest_change(self) -> StatusChange | None:
        return self.status_changes[-1] if self.status_changes else None

    @property
    def status_message(self) -> str | None:
        """Provider message attached to the latest status change, if any."""
        latest = self.latest_change
        if latest is None:
            return None
        return latest.message or latest.sub_code

    @property
    def observed_at(self) -> str | None:
        """Provider timestamp of the latest status change."""
        latest = self.latest_change
        return latest.created_at if latest else None

    @property
    def session_id(self) -> str | None:
        value = self.metadata.get("session_id")
        return str(value) if value else None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Bot":
        """
        Build a Bot from a Recall.ai bot resource.

        The current status is read from ``status.code`` when present, falling
        back to the last entry of ``status_changes``.

        Args:
            data: JSON body of ``GET /bot/{id}`` or ``POST /bot``

        Returns:
            Bot instance
        """
        changes = [
            StatusChange.from_dict(change)
            for change in data.get("status_changes") or []
            if isinstance(change, dict)
        ]

        raw_status = None
        status_field = data.get("status")
        if isinstance(status_field, dict):
            raw_status = status_field.get("code")
        elif isinstance(status_field, str):
            raw_status = status_field
        if not raw_status and changes:
            raw_status = changes[-1].code

        meeting_url = data.get("meeting_url")
        if isinstance(meeting_url, dict):
            meeting_url = meeting_url.get("url") or meeting_url.get("meeting_id")

        recording_id = data.get("recording_id")
        recordings = data.get("recordings") or []
        if not recording_id and recordings and isinstance(recordings[0], dict):
            recording_id = recordings[0].get("id")

        return cls(
            id=str(data["id"]),
            status=map_remote_status(raw_status) if raw_status else BotStatus.CREATED,
            raw_status=raw_status,
            meeting_url=meeting_url,
            recording_id=recording_id,
            status_changes=changes,
            metadata=dict(data.get("metadata") or {}),
            completed_at=data.get("completed_at"),
            created_at=data.get("created_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "status": self.status.value,
            "raw_status": self.raw_status,
            "meeting_url": self.meeting_url,
            "recording_id": self.recording_id,
            "status_message": self.status_message,
            "observed_at": self.observed_at,
        }
