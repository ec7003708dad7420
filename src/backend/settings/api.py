"""
Settings endpoints.

`max_concurrent` applies immediately; everything else is read when the
pipeline is built, i.e. on the next start.
"""

from __future__ import annotations

import dataclasses
import tempfile
from pathlib import Path
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ..net.proxy import ProxyConfig
from ..net.retry import RetryConfig
from ..net.throttle import ThrottleConfig
from ..scheduler.config import MAX_CONCURRENT_CEILING, SchedulerConfig
from ..scheduler.scheduler import Scheduler
from .models import DEFAULT_API_ROOT, BotConfig, GlobalSettings
from .store import SettingsStore


class BotIn(BaseModel):
    token: str = Field(min_length=1)
    api_root: str = DEFAULT_API_ROOT
    local_mode: bool = False


class StorageRootIn(BaseModel):
    storage_root: str = Field(min_length=1)


class MaxConcurrentIn(BaseModel):
    max_concurrent: int = Field(ge=1, le=MAX_CONCURRENT_CEILING)


class LimitsIn(BaseModel):
    max_upload_mb: int = Field(ge=1, le=4000, default=2048)
    tool_timeout_s: float = Field(ge=1.0, le=3600.0, default=300.0)
    keep_downloads: bool = False
    debounce_ms: int = Field(ge=0, le=5000, default=150)
    max_message_length: int = Field(ge=100, le=4096, default=4096)
    self_update_interval_s: float = Field(ge=0.0, default=86400.0)


class ThrottleIn(BaseModel):
    min_interval_s: float = Field(ge=0.0, le=60.0, default=0.05)
    per_key_interval_s: float = Field(ge=0.0, le=60.0, default=1.0)
    jitter_max_s: float = Field(ge=0.0, le=30.0, default=0.0)
    enabled: bool = True


class RetryIn(BaseModel):
    max_retries: int = Field(ge=0, le=10, default=3)
    base_delay_s: float = Field(ge=0.1, le=60.0, default=1.0)
    max_delay_s: float = Field(ge=1.0, le=300.0, default=60.0)
    enabled: bool = True


class ProxyIn(BaseModel):
    enabled: bool = False
    url: str = ""


class BotStatusOut(BaseModel):
    configured: bool
    api_root: Optional[str] = None
    local_mode: bool = False


class ProxyOut(BaseModel):
    enabled: bool
    url_configured: bool


class SettingsOut(BaseModel):
    # Persisted values may sit outside the input ranges, so sections are plain dicts.
    # The bot token and proxy URL may embed credentials and are never echoed.
    bot: BotStatusOut
    storage_root: str
    max_concurrent: int
    limits: dict[str, Any]
    throttle: dict[str, Any]
    retry: dict[str, Any]
    proxy: ProxyOut


def _pick(source: object, model: type[BaseModel]) -> dict[str, Any]:
    return {name: getattr(source, name) for name in model.model_fields}


def _public_settings(settings: GlobalSettings) -> SettingsOut:
    bot = settings.bot
    proxy = settings.get_proxy()
    return SettingsOut(
        bot=BotStatusOut(
            configured=settings.bot_configured(),
            api_root=bot.api_root if bot else None,
            local_mode=bool(bot and bot.local_mode),
        ),
        storage_root=settings.storage_root,
        max_concurrent=settings.max_concurrent,
        limits=_pick(settings, LimitsIn),
        throttle=_pick(settings.get_throttle(), ThrottleIn),
        retry=_pick(settings.get_retry(), RetryIn),
        proxy=ProxyOut(enabled=proxy.enabled, url_configured=bool(proxy.url.strip())),
    )


def _prepare_storage_root(raw: str, *, repo_root: Path) -> Path:
    """Resolve `raw` against the repo root, create it and prove it is writable."""
    text = raw.strip()
    if not text:
        raise ValueError("Storage root must not be empty")
    root = Path(text).expanduser()
    if not root.is_absolute():
        root = (repo_root / root).resolve()

    try:
        root.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryFile(prefix=".mediabot_write_check_", dir=root):
            pass
    except FileExistsError as exc:
        raise ValueError(f"Storage root is not a directory: {root}") from exc
    except PermissionError as exc:
        raise ValueError(f"Storage root is not writable: {root}") from exc
    except OSError as exc:
        raise ValueError(f"Cannot use storage root {root}: {exc}") from exc
    return root


def create_settings_router(
    *, store: SettingsStore, scheduler_config: SchedulerConfig, scheduler: Scheduler, repo_root: Path
) -> APIRouter:
    router = APIRouter(prefix="/api/settings", tags=["settings"])

    def save(**changes: Any) -> SettingsOut:
        updated = store.update(mutator=lambda settings: dataclasses.replace(settings, **changes))
        return _public_settings(updated)

    @router.get("", response_model=SettingsOut)
    def get_settings() -> SettingsOut:
        return _public_settings(store.load())

    @router.post("/bot", response_model=SettingsOut)
    def set_bot(body: BotIn) -> SettingsOut:
        return save(
            bot=BotConfig(
                token=body.token.strip(),
                api_root=body.api_root.strip() or DEFAULT_API_ROOT,
                local_mode=body.local_mode,
            )
        )

    @router.delete("/bot", response_model=SettingsOut)
    def clear_bot() -> SettingsOut:
        return _public_settings(store.clear_bot())

    @router.post("/storage-root", response_model=SettingsOut)
    def set_storage_root(body: StorageRootIn) -> SettingsOut:
        try:
            root = _prepare_storage_root(body.storage_root, repo_root=repo_root)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return save(storage_root=str(root))

    @router.post("/max-concurrent", response_model=SettingsOut)
    async def set_max_concurrent(body: MaxConcurrentIn) -> SettingsOut:
        try:
            scheduler_config.set_max_concurrent(body.max_concurrent)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        out = save(max_concurrent=body.max_concurrent)
        await scheduler.reschedule()
        return out

    @router.post("/limits", response_model=SettingsOut)
    def set_limits(body: LimitsIn) -> SettingsOut:
        return save(**body.model_dump())

    @router.post("/throttle", response_model=SettingsOut)
    def set_throttle(body: ThrottleIn) -> SettingsOut:
        return save(throttle=ThrottleConfig(**body.model_dump()))

    @router.post("/retry", response_model=SettingsOut)
    def set_retry(body: RetryIn) -> SettingsOut:
        return save(retry=RetryConfig(**body.model_dump()))

    @router.post("/proxy", response_model=SettingsOut)
    def set_proxy(body: ProxyIn) -> SettingsOut:
        proxy = ProxyConfig(enabled=body.enabled, url=body.url.strip())
        ok, reason = proxy.validate()
        if not ok:
            raise HTTPException(status_code=400, detail=reason)
        return save(proxy=proxy)

    @router.delete("/proxy", response_model=SettingsOut)
    def clear_proxy() -> SettingsOut:
        return save(proxy=ProxyConfig())

    return router
