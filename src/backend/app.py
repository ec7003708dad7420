from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI

from .messaging.models import Destination
from .pipeline.factory import build_client, build_pipeline
from .pipeline.url_pipeline import UrlPipeline
from .scheduler.api import create_jobs_router
from .scheduler.config import SchedulerConfig
from .scheduler.models import Job
from .scheduler.scheduler import Scheduler
from .settings.api import create_settings_router
from .settings.store import SettingsStore


logger = logging.getLogger(__name__)


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def create_app(*, repo_root: Optional[Path] = None, pipeline: Optional[UrlPipeline] = None) -> FastAPI:
    """
    Build the HTTP app.

    Args:
        repo_root: Base directory for `data/` (settings, job snapshots).
        pipeline: Prebuilt pipeline (tests); otherwise one is built from the
            settings on startup, once the bot identity is known.
    """
    repo_root = repo_root or _repo_root()
    data_dir = repo_root / "data"
    config_path = data_dir / "config.json"
    jobs_dir = data_dir / "jobs"

    store = SettingsStore(path=config_path)
    scheduler_config = SchedulerConfig(max_concurrent=store.load().max_concurrent)

    async def run_job(job: Job) -> list[dict[str, Any]]:
        current: Optional[UrlPipeline] = app.state.pipeline
        if current is None:
            raise RuntimeError("Bot is not configured; set a token and restart")
        results = await current.process_event(
            job.urls,
            job.verbose,
            destination=Destination(chat_id=job.chat_id, chat_type=job.chat_type),
            reply_to=job.reply_to_message_id,
        )
        return [result.to_dict() for result in results]

    scheduler = Scheduler(config=scheduler_config, jobs_dir=jobs_dir, runner=run_job)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        client = None
        if app.state.pipeline is None:
            settings = store.load().with_env_overrides()
            if settings.bot_configured():
                client = build_client(settings)
                await client.connect()
                app.state.pipeline = build_pipeline(settings, client=client)
            else:
                logger.warning("No bot token configured; jobs will fail until one is set")
        try:
            yield
        finally:
            await scheduler.shutdown()
            if client is not None:
                await client.aclose()

    app = FastAPI(title="mediabot", lifespan=lifespan)
    app.include_router(
        create_settings_router(store=store, scheduler_config=scheduler_config, scheduler=scheduler, repo_root=repo_root)
    )
    app.include_router(create_jobs_router(scheduler=scheduler))

    app.state.settings_store = store
    app.state.scheduler_config = scheduler_config
    app.state.scheduler = scheduler
    app.state.repo_root = repo_root
    app.state.pipeline = pipeline
    return app


app = create_app()
