"""Data models for sessions and bots."""

from .bot import Bot, BotStatus, StatusChange, map_remote_status
from .session import BOT_FIELDS, Session, SyncResult

__all__ = [
    "BOT_FIELDS",
    "Bot",
    "BotStatus",
    "Session",
    "StatusChange",
    "SyncResult",
    "map_remote_status",
]
