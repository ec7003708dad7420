from __future__ import annotations

import asyncio
import functools
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Optional

from src.shared.task_status import TaskStatus

from .config import SchedulerConfig
from .models import Job, utc_now


logger = logging.getLogger(__name__)

# Runs a job and returns one result dict per URL
RunnerFn = Callable[[Job], Awaitable[list[dict[str, Any]]]]


class JobNotFoundError(KeyError):
    pass


class Scheduler:
    """
    In-memory FIFO job queue.

    - Global FIFO queue
    - MaxConcurrent gate (from SchedulerConfig)
    - Job snapshots written to `jobs_dir` on every status change
    """

    def __init__(
        self,
        *,
        config: SchedulerConfig,
        runner: RunnerFn,
        jobs_dir: Optional[Path] = None,
    ) -> None:
        self._config = config
        self._runner = runner
        self._jobs_dir = Path(jobs_dir) if jobs_dir is not None else None

        self._lock = asyncio.Lock()
        self._queue: list[str] = []
        self._running_tasks: dict[str, asyncio.Task[None]] = {}
        self._jobs: dict[str, Job] = {}

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------

    async def enqueue(
        self,
        *,
        urls: Iterable[str],
        chat_id: int,
        chat_type: str = "private",
        verbose: bool = False,
        reply_to_message_id: Optional[int] = None,
    ) -> Job:
        cleaned = [u.strip() for u in urls if u and u.strip()]
        if not cleaned:
            raise ValueError("urls must not be empty")

        async with self._lock:
            now = utc_now()
            # FIFO: while anything is queued, new jobs go to the back.
            should_queue = bool(self._queue) or len(self._running_tasks) >= self._config.max_concurrent
            job = Job(
                job_id=str(uuid.uuid4()),
                urls=cleaned,
                chat_id=int(chat_id),
                chat_type=chat_type,
                verbose=bool(verbose),
                reply_to_message_id=reply_to_message_id,
                status=TaskStatus.QUEUED if should_queue else TaskStatus.RUNNING,
                created_at=now,
                updated_at=now,
            )
            self._jobs[job.job_id] = job
            self._persist_job(job)

            if job.status == TaskStatus.QUEUED:
                self._queue.append(job.job_id)
            else:
                self._start_job_locked(job.job_id)

            self._try_start_queued_locked()
            return job

    async def cancel(self, job_id: str) -> TaskStatus:
        """
        Cancel a queued or running job.

        Raises:
            JobNotFoundError: Unknown job id.
        """
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)

            if job.status == TaskStatus.QUEUED:
                self._queue = [jid for jid in self._queue if jid != job_id]
                job.status = TaskStatus.CANCELLED
                job.updated_at = utc_now()
                self._persist_job(job)
                return job.status

            if job.status == TaskStatus.RUNNING:
                task = self._running_tasks.get(job_id)
                if task and not task.done():
                    task.cancel()
                # The final status is set by the job wrapper.
                return TaskStatus.RUNNING

            return job.status

    async def get(self, job_id: str) -> Job:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job

    async def queued_position(self, job_id: str) -> Optional[int]:
        async with self._lock:
            if job_id in self._queue:
                return self._queue.index(job_id) + 1
            return None

    async def list_jobs(self) -> list[Job]:
        async with self._lock:
            return sorted(self._jobs.values(), key=lambda j: j.created_at)

    async def snapshot(self) -> dict[str, Any]:
        async with self._lock:
            return {
                "max_concurrent": self._config.max_concurrent,
                "running_count": len(self._running_tasks),
                "queued_count": len(self._queue),
                "running": list(self._running_tasks.keys()),
                "queued": list(self._queue),
            }

    async def reschedule(self) -> None:
        """
        Called when max_concurrent changes (or as a manual kick) to fill available slots.
        """
        async with self._lock:
            self._try_start_queued_locked()

    async def wait_idle(self) -> None:
        """Wait until no job is running or queued."""
        while True:
            async with self._lock:
                tasks = list(self._running_tasks.values())
                if not tasks and not self._queue:
                    return
            if tasks:
                await asyncio.wait(tasks)
            else:
                await asyncio.sleep(0)

    async def shutdown(self) -> None:
        """Cancel everything still queued or running."""
        async with self._lock:
            for job_id in self._queue:
                job = self._jobs[job_id]
                job.status = TaskStatus.CANCELLED
                job.updated_at = utc_now()
                self._persist_job(job)
            self._queue.clear()
            tasks = list(self._running_tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ---------------------------------------------------------------------
    # Internals (lock must be held where indicated)
    # ---------------------------------------------------------------------

    def _persist_job(self, job: Job) -> None:
        if self._jobs_dir is None:
            return
        try:
            self._jobs_dir.mkdir(parents=True, exist_ok=True)
            path = self._jobs_dir / f"{job.job_id}.json"
            path.write_text(json.dumps(job.to_public_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as exc:
            # In-memory state is authoritative; a failed snapshot must not stop the queue.
            logger.warning("Failed to persist job %s: %s", job.job_id, exc)

    def _start_job_locked(self, job_id: str) -> None:
        job = self._jobs.get(job_id)
        if not job:
            return

        job.status = TaskStatus.RUNNING
        job.updated_at = utc_now()
        self._persist_job(job)

        task = asyncio.create_task(self._job_wrapper(job_id), name=f"mediabot-job-{job_id}")
        self._running_tasks[job_id] = task
        task.add_done_callback(functools.partial(self._on_task_done, job_id))

    def _try_start_queued_locked(self) -> None:
        while len(self._running_tasks) < self._config.max_concurrent and self._queue:
            job_id = self._queue.pop(0)
            job = self._jobs.get(job_id)
            if not job or job.status != TaskStatus.QUEUED:
                continue
            self._start_job_locked(job_id)

    async def _job_wrapper(self, job_id: str) -> None:
        job = self._jobs.get(job_id)
        if not job:
            return

        final_status: TaskStatus
        results: list[dict[str, Any]] = []
        error: Optional[str] = None
        try:
            results = await self._runner(job)
            final_status = TaskStatus.DONE
        except asyncio.CancelledError:
            final_status = TaskStatus.CANCELLED
        except Exception as exc:
            logger.exception("Job %s failed", job_id)
            final_status = TaskStatus.FAILED
            error = str(exc)

        await self._finish_job(job_id, final_status=final_status, results=results, error=error)

    def _on_task_done(self, job_id: str, task: asyncio.Task[None]) -> None:
        # Cancelled before the wrapper started: nobody else will settle the job.
        if task.cancelled():
            asyncio.ensure_future(
                self._finish_job(job_id, final_status=TaskStatus.CANCELLED, results=[], error=None)
            )

    async def _finish_job(
        self,
        job_id: str,
        *,
        final_status: TaskStatus,
        results: list[dict[str, Any]],
        error: Optional[str],
    ) -> None:
        async with self._lock:
            job = self._jobs.get(job_id)
            self._running_tasks.pop(job_id, None)
            if job is not None:
                job.status = final_status
                job.results = list(results)
                job.error = error
                job.updated_at = utc_now()
                self._persist_job(job)

            self._try_start_queued_locked()
