from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

from ..net.throttle import ThrottleConfig
from ..net.retry import RetryConfig
from ..net.proxy import ProxyConfig
from ..tool.ytdlp import DEFAULT_FORMAT


DEFAULT_API_ROOT = "https://api.telegram.org"
DEFAULT_STORAGE_ROOT = "storage"
DEFAULT_MAX_CONCURRENT = 3
DEFAULT_MAX_UPLOAD_MB = 2048
DEFAULT_TOOL_TIMEOUT_S = 300.0
DEFAULT_DEBOUNCE_MS = 150
DEFAULT_MAX_MESSAGE_LENGTH = 4096
DEFAULT_SELF_UPDATE_INTERVAL_S = 24 * 60 * 60
DEFAULT_YTDLP_PATH = "yt-dlp"

ENV_BOT_TOKEN = "MEDIABOT_BOT_TOKEN"
ENV_API_ROOT = "MEDIABOT_API_ROOT"
ENV_STORAGE_ROOT = "MEDIABOT_STORAGE_ROOT"


def _as_int(value: Any, default: int, *, minimum: Optional[int] = None) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    if minimum is not None and parsed < minimum:
        return default
    return parsed


def _as_float(value: Any, default: float, *, minimum: Optional[float] = None) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    if minimum is not None and parsed < minimum:
        return default
    return parsed


def _as_str(value: Any, default: str) -> str:
    text = str(value).strip() if value is not None else ""
    return text or default


@dataclass(frozen=True)
class BotConfig:
    token: str
    api_root: str = DEFAULT_API_ROOT
    # A local Bot API server reads uploads straight from disk
    local_mode: bool = False

    def is_complete(self) -> bool:
        return bool(self.token.strip())

    def to_persist_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "api_root": self.api_root,
            "local_mode": self.local_mode,
        }

    @classmethod
    def from_persist_dict(cls, data: dict[str, Any]) -> "BotConfig":
        return cls(
            token=str(data.get("token", "") or ""),
            api_root=_as_str(data.get("api_root"), DEFAULT_API_ROOT),
            local_mode=bool(data.get("local_mode", False)),
        )


@dataclass
class GlobalSettings:
    bot: Optional[BotConfig] = None
    storage_root: str = DEFAULT_STORAGE_ROOT
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    max_upload_mb: int = DEFAULT_MAX_UPLOAD_MB
    tool_timeout_s: float = DEFAULT_TOOL_TIMEOUT_S
    keep_downloads: bool = False
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH
    # 0 disables the periodic `--update`
    self_update_interval_s: float = DEFAULT_SELF_UPDATE_INTERVAL_S
    ytdlp_path: str = DEFAULT_YTDLP_PATH
    ytdlp_format: str = DEFAULT_FORMAT
    throttle: Optional[ThrottleConfig] = None
    retry: Optional[RetryConfig] = None
    proxy: Optional[ProxyConfig] = None

    def bot_configured(self) -> bool:
        return self.bot is not None and self.bot.is_complete()

    # Unset sections persist as absent and read back as defaults
    def get_throttle(self) -> ThrottleConfig:
        return self.throttle or ThrottleConfig()

    def get_retry(self) -> RetryConfig:
        return self.retry or RetryConfig()

    def get_proxy(self) -> ProxyConfig:
        return self.proxy or ProxyConfig()

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    def with_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> "GlobalSettings":
        """
        Copy of these settings with MEDIABOT_* environment variables applied.

        Environment values win over persisted ones and are never written back.
        """
        env = os.environ if environ is None else environ
        updated = replace(self)

        token = (env.get(ENV_BOT_TOKEN) or "").strip()
        api_root = (env.get(ENV_API_ROOT) or "").strip()
        if token or api_root:
            current = self.bot or BotConfig(token="")
            updated.bot = replace(
                current,
                token=token or current.token,
                api_root=api_root or current.api_root,
            )

        storage_root = (env.get(ENV_STORAGE_ROOT) or "").strip()
        if storage_root:
            updated.storage_root = storage_root
        return updated

    def to_persist_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": 1,
            "storage_root": self.storage_root,
            "max_concurrent": self.max_concurrent,
            "max_upload_mb": self.max_upload_mb,
            "tool_timeout_s": self.tool_timeout_s,
            "keep_downloads": self.keep_downloads,
            "debounce_ms": self.debounce_ms,
            "max_message_length": self.max_message_length,
            "self_update_interval_s": self.self_update_interval_s,
            "ytdlp_path": self.ytdlp_path,
            "ytdlp_format": self.ytdlp_format,
        }
        for name in _SECTIONS:
            section = getattr(self, name)
            if section is not None:
                data[name] = section.to_persist_dict()
        return data

    @classmethod
    def from_persist_dict(cls, data: dict[str, Any]) -> "GlobalSettings":
        sections = {
            name: section_type.from_persist_dict(data[name])
            for name, section_type in _SECTIONS.items()
            if isinstance(data.get(name), dict)
        }
        return cls(
            **sections,
            storage_root=_as_str(data.get("storage_root"), DEFAULT_STORAGE_ROOT),
            max_concurrent=_as_int(data.get("max_concurrent"), DEFAULT_MAX_CONCURRENT, minimum=1),
            max_upload_mb=_as_int(data.get("max_upload_mb"), DEFAULT_MAX_UPLOAD_MB, minimum=1),
            tool_timeout_s=_as_float(data.get("tool_timeout_s"), DEFAULT_TOOL_TIMEOUT_S, minimum=1.0),
            keep_downloads=bool(data.get("keep_downloads", False)),
            debounce_ms=_as_int(data.get("debounce_ms"), DEFAULT_DEBOUNCE_MS, minimum=0),
            max_message_length=_as_int(data.get("max_message_length"), DEFAULT_MAX_MESSAGE_LENGTH, minimum=100),
            self_update_interval_s=_as_float(
                data.get("self_update_interval_s"), DEFAULT_SELF_UPDATE_INTERVAL_S, minimum=0.0
            ),
            ytdlp_path=_as_str(data.get("ytdlp_path"), DEFAULT_YTDLP_PATH),
            ytdlp_format=_as_str(data.get("ytdlp_format"), DEFAULT_FORMAT),
        )


# Nested config objects, persisted as sub-objects under their field name
_SECTIONS: dict[str, Any] = {
    "bot": BotConfig,
    "throttle": ThrottleConfig,
    "retry": RetryConfig,
    "proxy": ProxyConfig,
}
