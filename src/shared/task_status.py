"""
Job status enum shared by the job scheduler, its HTTP API and tests.

Lifecycle:
    Queued -> Running -> Done / Failed / Cancelled
"""

from __future__ import annotations

from enum import Enum


class TaskStatus(str, Enum):
    QUEUED = "Queued"
    RUNNING = "Running"
    DONE = "Done"
    FAILED = "Failed"
    CANCELLED = "Cancelled"

    def is_active(self) -> bool:
        return self in (TaskStatus.QUEUED, TaskStatus.RUNNING)
