"""
Wires the pipeline stages together from GlobalSettings.
"""

from __future__ import annotations

from typing import Optional

from src.backend.cache.metadata_cache import MetadataCache
from src.backend.cache.metadata_store import MetadataStore
from src.backend.downloader.dedup import RemoteHandleStore
from src.backend.downloader.downloader import ArtifactDownloader
from src.backend.fs.storage import StorageLayout
from src.backend.messaging.base import MessagingClient
from src.backend.messaging.telegram import TelegramBotClient
from src.backend.net.throttle import Throttle
from src.backend.pipeline.url_pipeline import LogOptions, UrlPipeline
from src.backend.settings.models import GlobalSettings
from src.backend.tool.runner import ToolRunner
from src.backend.tool.update_policy import SelfUpdatePolicy
from src.backend.tool.ytdlp import YtDlp
from src.backend.uploader.uploader import ArtifactUploader


def build_client(settings: GlobalSettings) -> TelegramBotClient:
    """
    Raises:
        ValueError: No bot token configured.
    """
    if not settings.bot_configured():
        raise ValueError("bot token is not configured")
    assert settings.bot is not None
    proxy = settings.get_proxy()
    return TelegramBotClient(
        token=settings.bot.token,
        api_root=settings.bot.api_root,
        local_mode=settings.bot.local_mode,
        throttle=Throttle(settings.get_throttle()),
        retry=settings.get_retry(),
        proxy=proxy if proxy.is_active() else None,
    )


def build_pipeline(
    settings: GlobalSettings,
    *,
    client: MessagingClient,
    runner: Optional[ToolRunner] = None,
    update_policy: Optional[SelfUpdatePolicy] = None,
) -> UrlPipeline:
    layout = StorageLayout(settings.storage_root)
    paths = layout.ensure_dirs()

    ytdlp = YtDlp(
        runner or ToolRunner(settings.ytdlp_path, timeout_s=settings.tool_timeout_s),
        output_template=layout.output_template,
        format_selector=settings.ytdlp_format,
        proxy_url=settings.get_proxy().get_url(),
        update_policy=update_policy or SelfUpdatePolicy(settings.self_update_interval_s),
    )
    handles = RemoteHandleStore()

    return UrlPipeline(
        client=client,
        metadata=MetadataCache(MetadataStore(paths.metadata), ytdlp, downloads_dir=paths.downloads),
        downloader=ArtifactDownloader(ytdlp, layout, handles, context_id=lambda: client.context_id),
        uploader=ArtifactUploader(
            client,
            handles,
            max_upload_bytes=settings.max_upload_bytes,
            keep_downloads=settings.keep_downloads,
        ),
        log_options=LogOptions(
            max_length=settings.max_message_length,
            debounce_s=settings.debounce_ms / 1000.0,
        ),
    )
