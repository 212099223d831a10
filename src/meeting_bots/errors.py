"""
Error types for the bot lifecycle.

The orchestrator, monitor and reconciler catch these and turn them into
persisted session state; only the gateway raises them to its caller.
"""


class BotServiceError(Exception):
    """Base class for bot lifecycle errors."""


class UnsupportedPlatformError(BotServiceError, ValueError):
    """Meeting URL does not belong to a supported platform. Not retryable."""

    def __init__(self, meeting_url: str):
        self.meeting_url = meeting_url
        super().__init__(f"Unsupported meeting platform: {meeting_url}")


class UpstreamTransportError(BotServiceError):
    """
    Network failure or non-2xx response from the bot provider.

    Attributes:
        message: Human-readable error (provider message where available)
        http_status: HTTP status code, or None for transport failures
        raw_body: Raw response body, if any
    """

    def __init__(
        self,
        message: str,
        http_status: int | None = None,
        raw_body: str | None = None,
    ):
        self.message = message
        self.http_status = http_status
        self.raw_body = raw_body
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"UpstreamTransportError(message={self.message!r}, "
            f"http_status={self.http_status!r})"
        )


class BotJoinTimeoutError(BotServiceError):
    """Bot did not reach the call before the monitor's wall-clock ceiling."""

    def __init__(self, bot_id: str, timeout: float):
        self.bot_id = bot_id
        self.timeout = timeout
        super().__init__(f"join timeout: bot did not join within {timeout:g}s")


class BotJoinFailedError(BotServiceError):
    """Provider reported the bot as failed."""

    def __init__(self, bot_id: str, message: str | None = None):
        self.bot_id = bot_id
        super().__init__(message or "Bot failed to join meeting")


class ReconciliationNoOp(BotServiceError):
    """Session has nothing to reconcile (no bot attached). Not a failure."""

    def __init__(self, session_id: str, reason: str = "No bot ID"):
        self.session_id = session_id
        self.reason = reason
        super().__init__(reason)
