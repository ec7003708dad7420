"""
Outbound proxy shared by the Bot API client (httpx) and the yt-dlp subprocess.

Both accept the same URL form, so a single setting covers both.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlsplit

PROXY_SCHEMES = ("http", "https", "socks4", "socks5")


@dataclass(frozen=True)
class ProxyConfig:
    enabled: bool = False
    url: str = ""

    def is_active(self) -> bool:
        return self.enabled and self.url.strip() != ""

    def get_url(self) -> Optional[str]:
        """The URL to hand to httpx / `--proxy`, or None when no proxy applies."""
        return self.url.strip() if self.is_active() else None

    def to_persist_dict(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "url": self.url}

    @classmethod
    def from_persist_dict(cls, data: dict[str, Any]) -> "ProxyConfig":
        return cls(enabled=bool(data.get("enabled")), url=str(data.get("url") or ""))

    def validate(self) -> tuple[bool, str]:
        """Return (ok, reason). A disabled proxy is always ok, whatever its URL."""
        if not self.enabled:
            return True, ""

        url = self.url.strip()
        if not url:
            return False, "Proxy URL is empty"

        try:
            parts = urlsplit(url)
        except ValueError as exc:
            return False, f"Proxy URL is malformed: {exc}"

        # "host:8080" parses with "host" as the scheme and no netloc
        if not parts.scheme or "://" not in url:
            return False, "Proxy URL has no scheme, expected one of " + ", ".join(PROXY_SCHEMES)
        if parts.scheme.lower() not in PROXY_SCHEMES:
            return False, f"Proxy scheme {parts.scheme!r} is not one of " + ", ".join(PROXY_SCHEMES)
        if not parts.hostname:
            return False, "Proxy URL has no host"
        return True, ""
