from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from src.shared.task_status import TaskStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_utc_z(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class Job:
    """One submitted event: a batch of URLs delivered to one chat."""
    job_id: str
    urls: list[str]
    chat_id: int
    status: TaskStatus
    created_at: datetime
    updated_at: datetime
    chat_type: str = "private"
    verbose: bool = False
    reply_to_message_id: Optional[int] = None
    results: list[dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "urls": list(self.urls),
            "chat_id": self.chat_id,
            "chat_type": self.chat_type,
            "verbose": self.verbose,
            "reply_to_message_id": self.reply_to_message_id,
            "status": self.status.value,
            "created_at": format_utc_z(self.created_at),
            "updated_at": format_utc_z(self.updated_at),
            "results": list(self.results),
            "error": self.error,
        }
