"""
Bot usage derivation.

Recording time is read back from the provider's ``status_changes`` history:
the period runs from the first ``in_call_recording`` change to the first
``recording_done``/``call_ended``/``done`` change. Any started minute is
billed.
"""

import math
from dataclasses import dataclass
from typing import Any

from meeting_bots.models.bot import Bot

RECORDING_START_CODES = frozenset({"in_call_recording"})
RECORDING_END_CODES = frozenset({"recording_done", "call_ended", "done"})


@dataclass
class UsageSummary:
    """Recording usage of one bot."""

    recording_started_at: str | None = None
    recording_ended_at: str | None = None
    duration_seconds: int = 0
    billable_minutes: int = 0
    cost: float = 0.0

    @property
    def has_recording(self) -> bool:
        return self.recording_started_at is not None and self.recording_ended_at is not None

    def to_fields(self) -> dict[str, Any]:
        """Session fields for this usage; empty when nothing was recorded."""
        if not self.has_recording:
            return {}
        return {
            "recording_started_at": self.recording_started_at,
            "recording_ended_at": self.recording_ended_at,
            "recording_duration_seconds": self.duration_seconds,
            "bot_recording_minutes": self.billable_minutes,
            "bot_billable_amount": self.cost,
        }


def calculate_usage(bot: Bot, cost_per_minute: float = 0.10) -> UsageSummary:
    """
    Derive recording duration, billable minutes and cost for a bot.

    Args:
        bot: Bot with its status history
        cost_per_minute: Price per billable minute

    Returns:
        UsageSummary, zeroed when the history has no complete recording period
    """
    start = next(
        (c for c in bot.status_changes if c.code in RECORDING_START_CODES and c.timestamp),
        None,
    )
    if start is None:
        return UsageSummary()

    end = next(
        (
            c for c in bot.status_changes
            if c.code in RECORDING_END_CODES and c.timestamp and c.timestamp >= start.timestamp
        ),
        None,
    )
    if end is None:
        return UsageSummary()

    duration = int((end.timestamp - start.timestamp).total_seconds())
    minutes = math.ceil(duration / 60)

    return UsageSummary(
        recording_started_at=start.created_at,
        recording_ended_at=end.created_at,
        duration_seconds=duration,
        billable_minutes=minutes,
        cost=round(minutes * cost_per_minute, 2),
    )
