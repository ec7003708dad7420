"""
Outbound messaging interface used by the log channel and the uploader.
"""

from __future__ import annotations

from typing import Optional, Protocol

from .models import Destination, SentMessage, SentVideo, VideoFields, VideoSource


class MessagingClient(Protocol):
    @property
    def context_id(self) -> str:
        """
        Identity under which remote handles are valid (e.g. the bot username).

        Handles returned by one context can't be reused by another.
        """
        ...

    async def send_message(
        self,
        destination: Destination,
        text: str,
        *,
        reply_to: Optional[int] = None,
    ) -> SentMessage:
        ...

    async def edit_message_text(self, message: SentMessage, text: str) -> SentMessage:
        ...

    async def send_video(
        self,
        destination: Destination,
        video: VideoSource,
        fields: VideoFields,
        *,
        reply_to: Optional[int] = None,
    ) -> SentVideo:
        ...
