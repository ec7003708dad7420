"""
Backoff for transient Bot API failures: 429 flood control, 5xx from the
server, dropped connections.

A server-supplied `retry_after` wins over the computed backoff when it asks
for a longer wait; both are capped at `max_delay_s`.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Set, TypeVar

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_S = 1.0
DEFAULT_MAX_DELAY_S = 60.0
DEFAULT_JITTER_FACTOR = 0.25
DEFAULT_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

T = TypeVar("T")
logger = logging.getLogger(__name__)


class RetryableError(Exception):
    """A failure that may go away if the same call is made again later."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        should_retry: bool = True,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.should_retry = should_retry
        try:
            self.retry_after = None if retry_after is None else float(retry_after)
        except (TypeError, ValueError):
            self.retry_after = None


def _number(data: dict, key: str, default: Any, cast: Callable[[Any], Any]) -> Any:
    try:
        return cast(data.get(key, default))
    except (TypeError, ValueError):
        return default


def _status_codes(raw: Any) -> Set[int]:
    codes: Set[int] = set()
    for item in raw if isinstance(raw, (list, tuple)) else ():
        try:
            codes.add(int(item))
        except (TypeError, ValueError):
            continue
    return codes or set(DEFAULT_RETRYABLE_STATUS_CODES)


@dataclass
class RetryConfig:
    max_retries: int = DEFAULT_MAX_RETRIES  # 0 disables retrying but keeps the call
    base_delay_s: float = DEFAULT_BASE_DELAY_S
    max_delay_s: float = DEFAULT_MAX_DELAY_S
    jitter_factor: float = DEFAULT_JITTER_FACTOR
    retryable_status_codes: Set[int] = field(
        default_factory=lambda: set(DEFAULT_RETRYABLE_STATUS_CODES)
    )
    enabled: bool = True

    def to_persist_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "max_retries": self.max_retries,
            "base_delay_s": self.base_delay_s,
            "max_delay_s": self.max_delay_s,
            "jitter_factor": self.jitter_factor,
            "retryable_status_codes": sorted(self.retryable_status_codes),
        }

    @classmethod
    def from_persist_dict(cls, data: dict) -> "RetryConfig":
        """Unparseable numbers fall back to defaults; the rest is clamped into range."""
        jitter = _number(data, "jitter_factor", DEFAULT_JITTER_FACTOR, float)
        return cls(
            max_retries=max(0, _number(data, "max_retries", DEFAULT_MAX_RETRIES, int)),
            base_delay_s=max(0.0, _number(data, "base_delay_s", DEFAULT_BASE_DELAY_S, float)),
            max_delay_s=max(0.0, _number(data, "max_delay_s", DEFAULT_MAX_DELAY_S, float)),
            jitter_factor=min(1.0, max(0.0, jitter)),
            retryable_status_codes=_status_codes(data.get("retryable_status_codes")),
            enabled=bool(data.get("enabled", True)),
        )

    def compute_delay(self, attempt: int, *, retry_after: Optional[float] = None) -> float:
        """Seconds to sleep before retry number `attempt` (0-based)."""
        backoff = min(self.base_delay_s * 2 ** attempt, self.max_delay_s)
        backoff *= 1 + random.uniform(0, self.jitter_factor)
        if retry_after is None:
            return backoff
        return max(backoff, min(retry_after, self.max_delay_s))

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in self.retryable_status_codes

def _should_retry(cfg: RetryConfig, exc: RetryableError) -> bool:
    if not exc.should_retry:
        return False
    return exc.status_code is None or cfg.is_retryable_status(exc.status_code)


async def with_retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
) -> T:
    """
    Await `func()` until it succeeds or the retry budget runs out.

    Only a RetryableError is retried, and only when its status (if any) is in
    the configured set. The final failure is re-raised unchanged. `on_retry`
    receives (attempt, exception, delay) in place of the default warning log.
    """
    cfg = config or RetryConfig()
    if not cfg.enabled:
        return await func()

    for attempt in range(cfg.max_retries + 1):
        try:
            return await func()
        except RetryableError as exc:
            if attempt == cfg.max_retries or not _should_retry(cfg, exc):
                raise
            delay = cfg.compute_delay(attempt, retry_after=exc.retry_after)
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            else:
                logger.warning("Retry %d/%d after %.2fs: %s", attempt + 1, cfg.max_retries, delay, exc)
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")
