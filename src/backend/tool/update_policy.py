"""
Self-update schedule for the external tool.

Extractors break as sites change, so yt-dlp is asked to update itself at
most once per interval. The "last update" timestamp lives on this object,
owned by the pipeline configuration, with an injectable clock for tests.
"""

from __future__ import annotations

import time
from typing import Callable, Optional


DEFAULT_UPDATE_INTERVAL_S = 24 * 60 * 60  # 1 day


class SelfUpdatePolicy:
    def __init__(
        self,
        interval_s: float = DEFAULT_UPDATE_INTERVAL_S,
        *,
        clock: Callable[[], float] = time.monotonic,
        enabled: bool = True,
    ) -> None:
        self._interval_s = float(interval_s)
        self._clock = clock
        self._enabled = bool(enabled) and self._interval_s > 0
        self._last_update: Optional[float] = None

    @property
    def last_update(self) -> Optional[float]:
        return self._last_update

    def should_update(self) -> bool:
        """
        Return True (and record the attempt) on first use and whenever the
        interval has elapsed since the last recorded update.
        """
        if not self._enabled:
            return False
        now = self._clock()
        if self._last_update is None or now - self._last_update >= self._interval_s:
            self._last_update = now
            return True
        return False

    def reset(self) -> None:
        """Forget the last update (for testing)."""
        self._last_update = None
