"""
Merging provider observations into a session row.

``merge_observation`` is the only place that decides what an observed bot
state changes on a session. It is pure: callers run it inside
``SessionStorage.transact_session`` so the decision is made against the row
as it is at write time.

Rules:
- ``unknown`` never changes the status
- a terminal status is never replaced by a non-terminal one
- a terminal status may be replaced by a different terminal status reported
  by the provider; locally decided statuses (timeout, cancel) never replace one
- a non-terminal status ignores observations older than the one last written
- ``bot_error`` follows the status: set for error statuses, cleared otherwise
"""

from dataclasses import dataclass, field
from typing import Any

from meeting_bots.models.bot import Bot, BotStatus, parse_timestamp

DEFAULT_ERRORS = {
    BotStatus.FAILED: "Bot failed to join meeting",
    BotStatus.TIMEOUT: "join timeout: bot did not join in time",
    BotStatus.PERMISSION_DENIED: "Recording permission denied",
}


@dataclass
class BotObservation:
    """One observed bot state, from a poll, a webhook-triggered sync or a stop."""

    status: BotStatus
    message: str | None = None
    observed_at: str | None = None
    usage: dict[str, Any] = field(default_factory=dict)
    remote: bool = True

    @property
    def error(self) -> str | None:
        """``bot_error`` value this observation implies."""
        if not self.status.is_error:
            return None
        return self.message or DEFAULT_ERRORS[self.status]

    @classmethod
    def from_bot(cls, bot: Bot, usage: dict[str, Any] | None = None) -> "BotObservation":
        return cls(
            status=bot.status,
            message=bot.status_message,
            observed_at=bot.observed_at,
            usage=dict(usage or {}),
        )


def _is_stale(current: dict[str, Any], observation: BotObservation) -> bool:
    last = parse_timestamp(current.get("bot_status_observed_at"))
    seen = parse_timestamp(observation.observed_at)
    return last is not None and seen is not None and seen < last


def status_applies(current: dict[str, Any], observation: BotObservation) -> bool:
    """Whether ``observation`` may replace the row's current status."""
    if observation.status is BotStatus.UNKNOWN:
        return False

    current_status = BotStatus.parse(current.get("bot_status"))
    if current_status is None:
        return True
    if current_status.is_terminal:
        return observation.remote and observation.status.is_terminal
    return not _is_stale(current, observation)


def merge_observation(current: dict[str, Any], observation: BotObservation) -> dict[str, Any]:
    """
    Compute the session fields an observation changes.

    Args:
        current: Session row as stored
        observation: Observed bot state

    Returns:
        Only the fields whose values differ; empty when nothing changes
    """
    proposed: dict[str, Any] = {}

    if status_applies(current, observation):
        proposed["bot_status"] = observation.status.value
        proposed["bot_error"] = observation.error
        if observation.observed_at:
            proposed["bot_status_observed_at"] = observation.observed_at

    for key, value in observation.usage.items():
        if value is not None:
            proposed[key] = value

    return {key: value for key, value in proposed.items() if current.get(key) != value}
