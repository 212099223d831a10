"""
Recording-bot provider gateways.

Usage:
    from meeting_bots.providers import build_gateway

    gateway = build_gateway(config)
    bot = await gateway.create_bot(meeting_url, session_id)
    bot = await gateway.get_bot(bot.id)
"""

from meeting_bots.config import BotServiceConfig

from .base import BotGateway, ProviderType
from .recall_provider import RecallBotGateway


def build_gateway(
    config: BotServiceConfig,
    provider_type: ProviderType | str = ProviderType.RECALL,
) -> BotGateway:
    """
    Build the gateway for a provider type.

    Raises:
        ValueError: If the provider type is unknown
    """
    if isinstance(provider_type, str):
        try:
            provider_type = ProviderType(provider_type)
        except ValueError:
            available = ", ".join(p.value for p in ProviderType)
            raise ValueError(
                f"Unknown provider type '{provider_type}'. Available: {available}"
            ) from None

    if provider_type is ProviderType.RECALL:
        return RecallBotGateway(config)

    raise ValueError(f"Provider type '{provider_type.value}' has no gateway")


__all__ = [
    "BotGateway",
    "ProviderType",
    "RecallBotGateway",
    "build_gateway",
]
