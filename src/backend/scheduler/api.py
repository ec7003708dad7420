from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from src.shared.task_status import TaskStatus

from .models import Job
from .scheduler import JobNotFoundError, Scheduler


class JobRequestIn(BaseModel):
    urls: list[str] = Field(min_length=1)
    chat_id: int
    chat_type: str = "private"
    verbose: bool = False
    reply_to_message_id: Optional[int] = None


class JobOut(BaseModel):
    job_id: str
    urls: list[str]
    chat_id: int
    chat_type: str
    verbose: bool
    reply_to_message_id: Optional[int] = None
    status: TaskStatus
    created_at: str
    updated_at: str
    queued_position: Optional[int] = None
    results: list[dict[str, Any]] = Field(default_factory=list)
    error: Optional[str] = None


class SchedulerSnapshotOut(BaseModel):
    max_concurrent: int
    running_count: int
    queued_count: int
    running: list[str]
    queued: list[str]


async def _job_out(scheduler: Scheduler, job: Job) -> JobOut:
    data = job.to_public_dict()
    data["queued_position"] = await scheduler.queued_position(job.job_id)
    return JobOut(**data)


def create_jobs_router(*, scheduler: Scheduler) -> APIRouter:
    router = APIRouter(prefix="/api/jobs", tags=["jobs"])

    @router.post("", response_model=JobOut, status_code=202)
    async def submit_job(body: JobRequestIn) -> JobOut:
        try:
            job = await scheduler.enqueue(
                urls=body.urls,
                chat_id=body.chat_id,
                chat_type=body.chat_type,
                verbose=body.verbose,
                reply_to_message_id=body.reply_to_message_id,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return await _job_out(scheduler, job)

    @router.get("", response_model=list[JobOut])
    async def list_jobs() -> list[JobOut]:
        return [await _job_out(scheduler, job) for job in await scheduler.list_jobs()]

    @router.get("/state", response_model=SchedulerSnapshotOut)
    async def get_state() -> SchedulerSnapshotOut:
        return SchedulerSnapshotOut(**await scheduler.snapshot())

    @router.get("/{job_id}", response_model=JobOut)
    async def get_job(job_id: str) -> JobOut:
        try:
            job = await scheduler.get(job_id)
        except JobNotFoundError as exc:
            raise HTTPException(status_code=404, detail=f"unknown job {job_id}") from exc
        return await _job_out(scheduler, job)

    @router.post("/{job_id}/cancel", response_model=JobOut)
    async def cancel_job(job_id: str) -> JobOut:
        try:
            await scheduler.cancel(job_id)
            job = await scheduler.get(job_id)
        except JobNotFoundError as exc:
            raise HTTPException(status_code=404, detail=f"unknown job {job_id}") from exc
        return await _job_out(scheduler, job)

    return router
