"""
Tests for merge_observation.

Test coverage:
- Status transitions and bot_error handling
- Terminal monotonicity and terminal-to-terminal corrections
- Out-of-order observations
- Usage fields and minimal change sets
"""

import pytest

from meeting_bots.models.bot import BotStatus
from meeting_bots.services.status_merge import BotObservation, merge_observation, status_applies


def row(**fields) -> dict:
    base = {"id": "s1", "bot_id": "bot-1", "bot_status": "joining", "bot_error": None}
    base.update(fields)
    return base


class TestStatusTransitions:
    """Tests for status changes on non-terminal rows."""

    def test_joined(self) -> None:
        """In-call observation replaces joining."""
        changes = merge_observation(row(), BotObservation(BotStatus.IN_CALL, observed_at="2024-12-13T10:00:10+00:00"))

        assert changes == {
            "bot_status": "in_call",
            "bot_status_observed_at": "2024-12-13T10:00:10+00:00",
        }

    def test_failed_sets_error(self) -> None:
        """Failed status writes the provider message."""
        changes = merge_observation(row(), BotObservation(BotStatus.FAILED, message="Meeting not found"))

        assert changes == {"bot_status": "failed", "bot_error": "Meeting not found"}

    def test_failed_default_error(self) -> None:
        changes = merge_observation(row(), BotObservation(BotStatus.FAILED))

        assert changes["bot_error"] == "Bot failed to join meeting"

    def test_error_cleared_on_recovery(self) -> None:
        """Non-error status clears a previous error."""
        current = row(bot_status="permission_denied", bot_error="Recording permission denied")

        changes = merge_observation(current, BotObservation(BotStatus.RECORDING))

        assert changes == {"bot_status": "recording", "bot_error": None}

    def test_unknown_changes_nothing(self) -> None:
        assert merge_observation(row(), BotObservation(BotStatus.UNKNOWN, message="?")) == {}

    def test_first_status_on_empty_row(self) -> None:
        current = row(bot_status=None)

        assert merge_observation(current, BotObservation(BotStatus.JOINING)) == {"bot_status": "joining"}

    def test_identical_observation_is_no_op(self) -> None:
        """Same state twice produces no changes."""
        current = row(bot_status="in_call", bot_status_observed_at="2024-12-13T10:00:10+00:00")

        changes = merge_observation(
            current, BotObservation(BotStatus.IN_CALL, observed_at="2024-12-13T10:00:10+00:00")
        )

        assert changes == {}


class TestTerminalMonotonicity:
    """Terminal statuses are never regressed."""

    @pytest.mark.parametrize("terminal", ["completed", "failed", "timeout", "cancelled"])
    @pytest.mark.parametrize("observed", [BotStatus.JOINING, BotStatus.IN_CALL, BotStatus.RECORDING])
    def test_non_terminal_does_not_regress(self, terminal: str, observed: BotStatus) -> None:
        current = row(bot_status=terminal, bot_error="x" if terminal in ("failed", "timeout") else None)

        changes = merge_observation(current, BotObservation(observed, observed_at="2030-01-01T00:00:00+00:00"))

        assert "bot_status" not in changes
        assert "bot_error" not in changes

    def test_terminal_correction(self) -> None:
        """Provider may correct failed to completed."""
        current = row(bot_status="failed", bot_error="Bot failed to join meeting")

        changes = merge_observation(current, BotObservation(BotStatus.COMPLETED))

        assert changes == {"bot_status": "completed", "bot_error": None}

    def test_local_terminal_does_not_replace_terminal(self) -> None:
        """A monitor timeout never overwrites a reconciled completion."""
        current = row(bot_status="completed")

        changes = merge_observation(current, BotObservation(BotStatus.TIMEOUT, message="late", remote=False))

        assert changes == {}

    def test_remote_terminal_replaces_cancelled(self) -> None:
        """Provider completion after a user stop is recorded."""
        current = row(bot_status="cancelled")

        assert merge_observation(current, BotObservation(BotStatus.COMPLETED)) == {"bot_status": "completed"}

    def test_usage_still_written_on_terminal_row(self) -> None:
        """Usage fields don't depend on the status rule."""
        current = row(bot_status="completed", bot_recording_minutes=0)

        changes = merge_observation(
            current,
            BotObservation(BotStatus.IN_CALL, usage={"bot_recording_minutes": 3, "bot_billable_amount": 0.3}),
        )

        assert changes == {"bot_recording_minutes": 3, "bot_billable_amount": 0.3}


class TestOutOfOrder:
    """Older observations do not overwrite newer ones."""

    def test_stale_observation_skipped(self) -> None:
        current = row(bot_status="recording", bot_status_observed_at="2024-12-13T10:05:00+00:00")

        observation = BotObservation(BotStatus.JOINING, observed_at="2024-12-13T10:00:00+00:00")

        assert status_applies(current, observation) is False
        assert merge_observation(current, observation) == {}

    def test_newer_observation_applies(self) -> None:
        current = row(bot_status="recording", bot_status_observed_at="2024-12-13T10:05:00Z")

        changes = merge_observation(
            current, BotObservation(BotStatus.IN_CALL, observed_at="2024-12-13T10:06:00Z")
        )

        assert changes["bot_status"] == "in_call"

    def test_observation_without_timestamp_applies(self) -> None:
        current = row(bot_status="joining", bot_status_observed_at="2024-12-13T10:05:00Z")

        assert status_applies(current, BotObservation(BotStatus.IN_CALL)) is True
