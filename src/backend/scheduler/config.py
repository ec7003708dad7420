from __future__ import annotations

from dataclasses import dataclass

MAX_CONCURRENT_CEILING = 100


@dataclass
class SchedulerConfig:
    """Mutable at runtime; the scheduler re-reads it on every dispatch."""

    max_concurrent: int = 3

    def set_max_concurrent(self, value: int) -> None:
        if not 1 <= value <= MAX_CONCURRENT_CEILING:
            raise ValueError(f"max_concurrent must be between 1 and {MAX_CONCURRENT_CEILING}")
        self.max_concurrent = value
