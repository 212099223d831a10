"""
Service wiring for the Flask app.

Builds the storage, gateway and services once per app from an explicit
configuration and exposes them to request handlers through
``app.extensions``.
"""

from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any

from flask import current_app

from meeting_bots.config import BotServiceConfig
from meeting_bots.providers import BotGateway, build_gateway
from meeting_bots.services.session_manager import BotSessionManager
from meeting_bots.services.status_sync import BotStatusSyncService
from meeting_bots.services.webhook_service import BotWebhookService
from meeting_bots.utils.background import BackgroundLoop

from .storage import SessionStorage

EXTENSION_KEY = "meeting_bots"


@dataclass
class BotServices:
    """Everything a request handler needs."""

    config: BotServiceConfig
    storage: SessionStorage
    gateway: BotGateway
    manager: BotSessionManager
    sync_service: BotStatusSyncService
    webhook_service: BotWebhookService
    loop: BackgroundLoop

    def run(self, coro: Coroutine, timeout: float | None = None) -> Any:
        """Run a coroutine on the background loop and wait for its result."""
        return self.loop.run(coro, timeout=timeout)


def build_services(
    config: BotServiceConfig,
    storage: SessionStorage | None = None,
    gateway: BotGateway | None = None,
    loop: BackgroundLoop | None = None,
) -> BotServices:
    """Build the service graph for one app."""
    storage = storage or SessionStorage(config)
    gateway = gateway or build_gateway(config)
    sync_service = BotStatusSyncService(storage, gateway, config)

    return BotServices(
        config=config,
        storage=storage,
        gateway=gateway,
        manager=BotSessionManager(storage, gateway, config),
        sync_service=sync_service,
        webhook_service=BotWebhookService(sync_service),
        loop=loop or BackgroundLoop(),
    )


def get_services() -> BotServices:
    """Services of the current Flask app."""
    return current_app.extensions[EXTENSION_KEY]
