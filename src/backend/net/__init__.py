"""
Outbound traffic shaping for the Bot API client: request pacing (throttle),
backoff on transient failures (retry) and the optional proxy.
"""

from .proxy import PROXY_SCHEMES, ProxyConfig
from .retry import RetryableError, RetryConfig, with_retry_async
from .throttle import Throttle, ThrottleConfig

__all__ = [
    "PROXY_SCHEMES",
    "ProxyConfig",
    "RetryConfig",
    "RetryableError",
    "Throttle",
    "ThrottleConfig",
    "with_retry_async",
]
