"""
Tests for the in-memory job scheduler.

Covers:
1. 5 jobs with MaxConcurrent=3 -> 3 Running + 2 Queued
2. A finished job frees its slot for the queue head (FIFO)
3. Cancel of a Queued job removes it from the queue; cancel of a Running job cancels its task
4. Runner failures mark the job Failed; snapshots are written to jobs_dir
"""

import asyncio
import json
import shutil
import tempfile
import unittest
from pathlib import Path

from src.backend.scheduler.config import SchedulerConfig
from src.backend.scheduler.models import Job
from src.backend.scheduler.scheduler import JobNotFoundError, Scheduler
from src.shared.task_status import TaskStatus


class SchedulerTestCase(unittest.TestCase):
    def setUp(self):
        """Create a runner that blocks until released, keyed by the job's first URL."""
        self.temp_dir = Path(tempfile.mkdtemp())
        self.jobs_dir = self.temp_dir / "jobs"
        self.release: dict[str, asyncio.Event] = {}
        self.started: list[str] = []

        async def controllable_runner(job: Job) -> list[dict]:
            key = job.urls[0]
            self.started.append(key)
            if key in self.release:
                await self.release[key].wait()
            if key.endswith("/boom"):
                raise RuntimeError("runner exploded")
            return [{"url": url, "status": "uploaded"} for url in job.urls]

        self.runner = controllable_runner

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_scheduler(self, max_concurrent: int = 3) -> Scheduler:
        return Scheduler(
            config=SchedulerConfig(max_concurrent=max_concurrent),
            jobs_dir=self.jobs_dir,
            runner=self.runner,
        )

    def block(self, *keys: str) -> None:
        for key in keys:
            self.release[key] = asyncio.Event()


class TestFifoQueueing(SchedulerTestCase):
    def test_five_jobs_three_running_two_queued(self):
        async def run_test():
            scheduler = self.make_scheduler(max_concurrent=3)
            urls = [f"https://example.com/{i}" for i in range(5)]
            self.block(*urls)
            jobs = [await scheduler.enqueue(urls=[u], chat_id=1) for u in urls]
            await asyncio.sleep(0)

            statuses = [job.status for job in jobs]
            snapshot = await scheduler.snapshot()
            positions = [await scheduler.queued_position(job.job_id) for job in jobs]

            for event in self.release.values():
                event.set()
            await scheduler.wait_idle()
            return statuses, snapshot, positions, jobs

        statuses, snapshot, positions, jobs = asyncio.run(run_test())
        self.assertEqual(statuses, [TaskStatus.RUNNING] * 3 + [TaskStatus.QUEUED] * 2)
        self.assertEqual(snapshot["running_count"], 3)
        self.assertEqual(snapshot["queued_count"], 2)
        self.assertEqual(positions, [None, None, None, 1, 2])
        self.assertTrue(all(job.status == TaskStatus.DONE for job in jobs))

    def test_queue_head_starts_when_slot_frees(self):
        async def run_test():
            scheduler = self.make_scheduler(max_concurrent=1)
            self.block("a", "b", "c")
            a = await scheduler.enqueue(urls=["a"], chat_id=1)
            b = await scheduler.enqueue(urls=["b"], chat_id=1)
            c = await scheduler.enqueue(urls=["c"], chat_id=1)
            await asyncio.sleep(0)
            self.assertEqual(self.started, ["a"])

            self.release["a"].set()
            for _ in range(5):
                await asyncio.sleep(0)
            self.assertEqual(a.status, TaskStatus.DONE)
            self.assertEqual(b.status, TaskStatus.RUNNING)
            self.assertEqual(c.status, TaskStatus.QUEUED)

            self.release["b"].set()
            self.release["c"].set()
            await scheduler.wait_idle()

        asyncio.run(run_test())
        self.assertEqual(self.started, ["a", "b", "c"])

    def test_raising_limit_starts_queued_jobs(self):
        async def run_test():
            config = SchedulerConfig(max_concurrent=1)
            scheduler = Scheduler(config=config, runner=self.runner)
            self.block("a", "b")
            await scheduler.enqueue(urls=["a"], chat_id=1)
            b = await scheduler.enqueue(urls=["b"], chat_id=1)
            config.set_max_concurrent(2)
            await scheduler.reschedule()
            status = b.status
            for event in self.release.values():
                event.set()
            await scheduler.wait_idle()
            return status

        self.assertEqual(asyncio.run(run_test()), TaskStatus.RUNNING)

    def test_results_recorded(self):
        async def run_test():
            scheduler = self.make_scheduler()
            job = await scheduler.enqueue(urls=[" u1 ", "", "u2"], chat_id=5, verbose=True, reply_to_message_id=9)
            await scheduler.wait_idle()
            return job

        job = asyncio.run(run_test())
        self.assertEqual(job.urls, ["u1", "u2"])
        self.assertEqual(job.status, TaskStatus.DONE)
        self.assertEqual([r["url"] for r in job.results], ["u1", "u2"])
        snapshot = json.loads((self.jobs_dir / f"{job.job_id}.json").read_text(encoding="utf-8"))
        self.assertEqual(snapshot["status"], "Done")
        self.assertEqual(snapshot["reply_to_message_id"], 9)
        self.assertTrue(snapshot["created_at"].endswith("Z"))

    def test_empty_urls_rejected(self):
        async def run_test():
            scheduler = self.make_scheduler()
            with self.assertRaises(ValueError):
                await scheduler.enqueue(urls=["  "], chat_id=1)

        asyncio.run(run_test())


class TestCancelAndFailure(SchedulerTestCase):
    def test_cancel_queued_job(self):
        async def run_test():
            scheduler = self.make_scheduler(max_concurrent=1)
            self.block("a", "b")
            await scheduler.enqueue(urls=["a"], chat_id=1)
            b = await scheduler.enqueue(urls=["b"], chat_id=1)
            status = await scheduler.cancel(b.job_id)
            snapshot = await scheduler.snapshot()
            self.release["a"].set()
            await scheduler.wait_idle()
            return status, snapshot, b

        status, snapshot, b = asyncio.run(run_test())
        self.assertEqual(status, TaskStatus.CANCELLED)
        self.assertEqual(snapshot["queued"], [])
        self.assertEqual(b.status, TaskStatus.CANCELLED)
        self.assertEqual(self.started, ["a"])

    def test_cancel_running_job(self):
        async def run_test():
            scheduler = self.make_scheduler()
            self.block("a")
            a = await scheduler.enqueue(urls=["a"], chat_id=1)
            await asyncio.sleep(0)
            status = await scheduler.cancel(a.job_id)
            await scheduler.wait_idle()
            return status, a

        status, a = asyncio.run(run_test())
        self.assertEqual(status, TaskStatus.RUNNING)
        self.assertEqual(a.status, TaskStatus.CANCELLED)

    def test_cancel_before_task_starts(self):
        async def run_test():
            scheduler = self.make_scheduler()
            a = await scheduler.enqueue(urls=["a"], chat_id=1)
            await scheduler.cancel(a.job_id)
            await scheduler.wait_idle()
            return a

        job = asyncio.run(run_test())
        self.assertEqual(job.status, TaskStatus.CANCELLED)
        self.assertEqual(self.started, [])

    def test_unknown_job(self):
        async def run_test():
            scheduler = self.make_scheduler()
            with self.assertRaises(JobNotFoundError):
                await scheduler.cancel("nope")
            with self.assertRaises(JobNotFoundError):
                await scheduler.get("nope")

        asyncio.run(run_test())

    def test_runner_failure_marks_job_failed(self):
        async def run_test():
            scheduler = self.make_scheduler()
            job = await scheduler.enqueue(urls=["https://example.com/boom"], chat_id=1)
            other = await scheduler.enqueue(urls=["https://example.com/fine"], chat_id=1)
            await scheduler.wait_idle()
            return job, other

        with self.assertLogs("src.backend.scheduler.scheduler", level="ERROR"):
            job, other = asyncio.run(run_test())
        self.assertEqual(job.status, TaskStatus.FAILED)
        self.assertEqual(job.error, "runner exploded")
        self.assertEqual(other.status, TaskStatus.DONE)

    def test_shutdown_cancels_everything(self):
        async def run_test():
            scheduler = self.make_scheduler(max_concurrent=1)
            self.block("a", "b")
            a = await scheduler.enqueue(urls=["a"], chat_id=1)
            b = await scheduler.enqueue(urls=["b"], chat_id=1)
            await asyncio.sleep(0)
            await scheduler.shutdown()
            await asyncio.sleep(0)
            return a, b

        a, b = asyncio.run(run_test())
        self.assertEqual(a.status, TaskStatus.CANCELLED)
        self.assertEqual(b.status, TaskStatus.CANCELLED)
        self.assertEqual(self.started, ["a"])


if __name__ == "__main__":
    unittest.main()
