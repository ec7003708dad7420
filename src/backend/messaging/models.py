from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union


PRIVATE_CHAT = "private"


@dataclass(frozen=True)
class Destination:
    """A chat that receives log messages and videos."""
    chat_id: int
    chat_type: str = PRIVATE_CHAT

    @property
    def is_private(self) -> bool:
        return self.chat_type == PRIVATE_CHAT


@dataclass(frozen=True)
class SentMessage:
    chat_id: int
    message_id: int
    text: str = ""


@dataclass(frozen=True)
class SentVideo:
    chat_id: int
    message_id: int
    file_id: str


@dataclass(frozen=True)
class LocalVideo:
    """A video file on disk, uploaded byte-for-byte."""
    path: Path


@dataclass(frozen=True)
class RemoteVideo:
    """A video already known to the endpoint, re-sent by its handle."""
    file_id: str


VideoSource = Union[LocalVideo, RemoteVideo]


@dataclass(frozen=True)
class VideoFields:
    """Presentation fields sent along with a video."""
    caption: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[int] = None
    supports_streaming: bool = True
    disable_notification: bool = True
    extra: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "supports_streaming": self.supports_streaming,
            "disable_notification": self.disable_notification,
        }
        if self.caption:
            payload["caption"] = self.caption
        if self.width:
            payload["width"] = self.width
        if self.height:
            payload["height"] = self.height
        if self.duration is not None:
            payload["duration"] = self.duration
        payload.update(self.extra)
        return payload
