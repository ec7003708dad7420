from .config import SchedulerConfig
from .models import Job
from .scheduler import JobNotFoundError, RunnerFn, Scheduler

__all__ = [
    "SchedulerConfig",
    "Job",
    "JobNotFoundError",
    "RunnerFn",
    "Scheduler",
]
