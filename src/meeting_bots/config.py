"""
Service configuration.

Built once at startup (normally with ``BotServiceConfig.from_env()``) and
passed to each component's constructor.

Environment variables:
    RECALL_AI_API_KEY: Recall.ai API key
    RECALL_AI_REGION: Recall.ai region (default: us-west-2)
    RECALL_AI_BASE_URL: Full API base URL (derived from region if not set)
    APP_URL: Public URL of this service, used for webhook targets
    RECALL_AI_WEBHOOK_URL: Webhook base URL (default: <APP_URL>/webhooks/recall)
    RECALL_WEBHOOK_SECRET: Svix signing secret for inbound webhooks
    RECALL_TRANSCRIPTION_PROVIDER: Streaming transcription backend for bots
    FALLBACK_TRANSCRIPTION_PROVIDER: Provider recorded when no bot is attached
    BOT_NAME: Display name of the bot in the call
    BOT_CREATE_MAX_ATTEMPTS / BOT_CREATE_RETRY_DELAY: Bot creation retries
    BOT_MONITOR_POLL_INTERVAL / BOT_MONITOR_TIMEOUT: Join monitor timing
    BOT_ENHANCEMENT_GUARD: Refuse a second enhancement for the same session
    BOT_COST_PER_MINUTE: Price used for the displayed billable amount
    REQUEST_TIMEOUT: Timeout for provider HTTP calls (seconds)
    GOOGLE_CLOUD_PROJECT: Enables Firestore session storage
    OUTPUT_DIR: Local storage directory when Firestore is not configured
    API_KEY / AUTH_ALLOW_ANONYMOUS: API authentication
    RATE_LIMIT_STORAGE_URI: flask-limiter storage backend
"""

import os
from dataclasses import dataclass

RECALL_REGIONS = ("us-west-2", "us-east-1", "eu-west-1", "ap-northeast-1")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class BotServiceConfig:
    """Configuration for the bot gateway, orchestrator, monitor and API."""

    recall_api_key: str = ""
    recall_region: str = "us-west-2"
    recall_base_url: str = ""
    app_url: str = "http://localhost:8080"
    webhook_base_url: str = ""
    webhook_secret: str = ""

    bot_name: str = "Meeting Assistant"
    transcription_provider: str = "assembly_ai"
    bot_transcription_provider_label: str = "recall_ai"
    fallback_transcription_provider: str = "deepgram"

    create_max_attempts: int = 3
    create_retry_delay: float = 2.0
    monitor_poll_interval: float = 5.0
    monitor_timeout: float = 300.0
    enhancement_guard: bool = True

    cost_per_minute: float = 0.10
    request_timeout: float = 30.0

    gcp_project: str = ""
    output_dir: str = "outputs"

    api_key: str = ""
    allow_anonymous: bool = False
    rate_limit_storage_uri: str = "memory://"
    development: bool = False

    sync_all_limit: int = 50

    def __post_init__(self) -> None:
        if not self.recall_base_url:
            self.recall_base_url = f"https://{self.recall_region}.recall.ai/api/v1"
        self.recall_base_url = self.recall_base_url.rstrip("/")
        if not self.webhook_base_url:
            self.webhook_base_url = f"{self.app_url.rstrip('/')}/webhooks/recall"
        self.webhook_base_url = self.webhook_base_url.rstrip("/")

    @classmethod
    def from_env(cls) -> "BotServiceConfig":
        """Build configuration from environment variables."""
        return cls(
            recall_api_key=os.getenv("RECALL_AI_API_KEY", ""),
            recall_region=os.getenv("RECALL_AI_REGION", "us-west-2"),
            recall_base_url=os.getenv("RECALL_AI_BASE_URL", ""),
            app_url=os.getenv("APP_URL", "http://localhost:8080"),
            webhook_base_url=os.getenv("RECALL_AI_WEBHOOK_URL", ""),
            webhook_secret=os.getenv("RECALL_WEBHOOK_SECRET", ""),
            bot_name=os.getenv("BOT_NAME", "Meeting Assistant"),
            transcription_provider=os.getenv("RECALL_TRANSCRIPTION_PROVIDER", "assembly_ai"),
            fallback_transcription_provider=os.getenv(
                "FALLBACK_TRANSCRIPTION_PROVIDER", "deepgram"
            ),
            create_max_attempts=max(1, _env_int("BOT_CREATE_MAX_ATTEMPTS", 3)),
            create_retry_delay=_env_float("BOT_CREATE_RETRY_DELAY", 2.0),
            monitor_poll_interval=_env_float("BOT_MONITOR_POLL_INTERVAL", 5.0),
            monitor_timeout=_env_float("BOT_MONITOR_TIMEOUT", 300.0),
            enhancement_guard=_env_bool("BOT_ENHANCEMENT_GUARD", True),
            cost_per_minute=_env_float("BOT_COST_PER_MINUTE", 0.10),
            request_timeout=_env_float("REQUEST_TIMEOUT", 30.0),
            gcp_project=os.getenv("GOOGLE_CLOUD_PROJECT", ""),
            output_dir=os.getenv("OUTPUT_DIR", "outputs"),
            api_key=os.getenv("API_KEY", ""),
            allow_anonymous=_env_bool("AUTH_ALLOW_ANONYMOUS", False),
            rate_limit_storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
            development=os.getenv("ENV", "").lower() == "development",
            sync_all_limit=_env_int("BOT_SYNC_ALL_LIMIT", 50),
        )

    @property
    def uses_firestore(self) -> bool:
        """Firestore is used whenever a GCP project is configured."""
        return bool(self.gcp_project)

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of errors.

        Returns:
            List of error strings (empty if valid)
        """
        errors = []

        if not self.recall_api_key:
            errors.append("RECALL_AI_API_KEY is required")
        if self.recall_region not in RECALL_REGIONS:
            errors.append(
                f"RECALL_AI_REGION must be one of: {', '.join(RECALL_REGIONS)}"
            )
        if not self.webhook_secret and not self.development:
            errors.append("RECALL_WEBHOOK_SECRET is required outside development")
        if self.create_max_attempts < 1:
            errors.append("BOT_CREATE_MAX_ATTEMPTS must be at least 1")
        if self.monitor_poll_interval <= 0:
            errors.append("BOT_MONITOR_POLL_INTERVAL must be positive")
        if self.monitor_timeout < self.monitor_poll_interval:
            errors.append("BOT_MONITOR_TIMEOUT must be at least the poll interval")

        return errors

    def to_dict(self) -> dict:
        """Return safe (no secrets) configuration summary."""
        return {
            "recall_region": self.recall_region,
            "recall_base_url": self.recall_base_url,
            "recall_configured": bool(self.recall_api_key),
            "webhook_base_url": self.webhook_base_url,
            "webhook_verification": bool(self.webhook_secret),
            "transcription_provider": self.transcription_provider,
            "fallback_transcription_provider": self.fallback_transcription_provider,
            "create_max_attempts": self.create_max_attempts,
            "monitor_poll_interval": self.monitor_poll_interval,
            "monitor_timeout": self.monitor_timeout,
            "enhancement_guard": self.enhancement_guard,
            "storage": "firestore" if self.uses_firestore else "local",
        }
