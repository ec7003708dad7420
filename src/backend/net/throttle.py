"""
Request throttling for the messaging endpoint.

The Bot API limits how fast one chat can receive messages and edits, and how
many requests the bot makes overall. The throttle keeps a global minimum
interval plus a separate per-chat interval, each with optional random jitter.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Hashable, Optional


DEFAULT_MIN_INTERVAL_S = 0.05      # Global: ~20 requests per second
DEFAULT_PER_KEY_INTERVAL_S = 1.0   # Per chat: ~1 message or edit per second
DEFAULT_JITTER_MAX_S = 0.0


@dataclass
class ThrottleConfig:
    """
    Configuration for request throttling.

    Attributes:
        min_interval_s: Minimum seconds between any two requests.
        per_key_interval_s: Minimum seconds between requests for the same key (chat).
        jitter_max_s: Maximum random jitter added to a computed delay.
        enabled: If False, throttling is disabled (for testing).
    """
    min_interval_s: float = DEFAULT_MIN_INTERVAL_S
    per_key_interval_s: float = DEFAULT_PER_KEY_INTERVAL_S
    jitter_max_s: float = DEFAULT_JITTER_MAX_S
    enabled: bool = True

    def to_persist_dict(self) -> dict:
        return {
            "min_interval_s": self.min_interval_s,
            "per_key_interval_s": self.per_key_interval_s,
            "jitter_max_s": self.jitter_max_s,
            "enabled": self.enabled,
        }

    @classmethod
    def from_persist_dict(cls, data: dict) -> "ThrottleConfig":
        def as_float(name: str, default: float) -> float:
            try:
                return max(0.0, float(data.get(name, default)))
            except (TypeError, ValueError):
                return default

        return cls(
            min_interval_s=as_float("min_interval_s", DEFAULT_MIN_INTERVAL_S),
            per_key_interval_s=as_float("per_key_interval_s", DEFAULT_PER_KEY_INTERVAL_S),
            jitter_max_s=as_float("jitter_max_s", DEFAULT_JITTER_MAX_S),
            enabled=bool(data.get("enabled", True)),
        )


class Throttle:
    """
    Async request throttler with a global and a per-key minimum interval.

    Usage:
        throttle = Throttle(ThrottleConfig())
        await throttle.wait_async(key=chat_id)
        await send_request()

    Slots are reserved under a lock, so concurrent callers are spaced out
    rather than all waking at once.
    """

    def __init__(self, config: Optional[ThrottleConfig] = None) -> None:
        self._config = config or ThrottleConfig()
        self._last_request_time: Optional[float] = None
        self._last_by_key: dict[Hashable, float] = {}
        self._lock = asyncio.Lock()

    @property
    def config(self) -> ThrottleConfig:
        return self._config

    def _jitter(self) -> float:
        if self._config.jitter_max_s <= 0:
            return 0.0
        return random.uniform(0, self._config.jitter_max_s)

    def _compute_delay(self, key: Optional[Hashable], now: float) -> float:
        """Compute the delay needed before the next request for `key`."""
        if not self._config.enabled:
            return 0.0

        delay = 0.0
        if self._last_request_time is not None:
            delay = max(delay, self._config.min_interval_s - (now - self._last_request_time))
        if key is not None and key in self._last_by_key:
            delay = max(delay, self._config.per_key_interval_s - (now - self._last_by_key[key]))

        if delay <= 0:
            return 0.0
        return delay + self._jitter()

    async def wait_async(self, key: Optional[Hashable] = None) -> float:
        """
        Wait until it's safe to make the next request.

        Returns:
            The delay waited (in seconds).
        """
        async with self._lock:
            now = time.monotonic()
            delay = self._compute_delay(key, now)
            # Reserve the slot before sleeping so later callers queue behind it.
            slot = now + delay
            self._last_request_time = slot
            if key is not None:
                self._last_by_key[key] = slot
        if delay > 0:
            await asyncio.sleep(delay)
        return delay

    def reset(self) -> None:
        """Reset the throttler state (for testing)."""
        self._last_request_time = None
        self._last_by_key.clear()
