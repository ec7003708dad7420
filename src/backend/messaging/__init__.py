"""
Outbound messaging: the client interface, its value types and the Telegram
Bot API implementation.
"""

from .base import MessagingClient
from .models import (
    Destination,
    LocalVideo,
    RemoteVideo,
    SentMessage,
    SentVideo,
    VideoFields,
    VideoSource,
)
from .telegram import BotApiError, TelegramBotClient

__all__ = [
    "MessagingClient",
    "Destination",
    "LocalVideo",
    "RemoteVideo",
    "SentMessage",
    "SentVideo",
    "VideoFields",
    "VideoSource",
    "BotApiError",
    "TelegramBotClient",
]
