from __future__ import annotations

import asyncio
import html
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from src.backend.cache.metadata_cache import MetadataCache
from src.backend.downloader.downloader import ArtifactDownloader
from src.backend.logchannel import LogChannel
from src.backend.messaging.base import MessagingClient
from src.backend.messaging.models import Destination
from src.backend.pipeline.summary import send_video_info
from src.backend.uploader.uploader import ArtifactUploader, UploadStatus
from src.shared.validators import normalize_source_url


logger = logging.getLogger(__name__)


class PipelineStatus(str, Enum):
    UPLOADED = "uploaded"
    TOO_LARGE = "too_large"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineResult:
    url: str
    status: PipelineStatus
    handle: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "status": self.status.value,
            "handle": self.handle,
            "error": self.error,
        }


@dataclass(frozen=True)
class LogOptions:
    max_length: int = 4096
    debounce_s: float = 0.15


class UrlPipeline:
    """
    scrape -> download -> upload for one URL, with its own log channel.

    Failures of any stage end up in the log channel and the diagnostic log;
    run() itself never raises (except on cancellation).
    """

    def __init__(
        self,
        *,
        client: MessagingClient,
        metadata: MetadataCache,
        downloader: ArtifactDownloader,
        uploader: ArtifactUploader,
        log_options: Optional[LogOptions] = None,
    ) -> None:
        self._client = client
        self._metadata = metadata
        self._downloader = downloader
        self._uploader = uploader
        self._log_options = log_options or LogOptions()

    def open_log(self, destination: Destination, reply_to: Optional[int] = None) -> LogChannel:
        return LogChannel(
            self._client,
            destination,
            reply_to=reply_to,
            max_length=self._log_options.max_length,
            debounce_s=self._log_options.debounce_s,
        )

    async def run(
        self,
        url: str,
        verbose: bool = False,
        *,
        destination: Destination,
        reply_to: Optional[int] = None,
        refresh: bool = False,
    ) -> PipelineResult:
        async with self.open_log(destination, reply_to) as log:
            try:
                normalized = normalize_source_url(url)
                if not normalized:
                    raise ValueError(f"{normalized.error}: {url}")
                source_url = normalized.url or url

                ref = await self._metadata.get_info(source_url, verbose, log=log, refresh=refresh)
                send_video_info(log, ref, verbose)
                await self._downloader.ensure_downloaded(ref, verbose, log=log)
                outcome = await self._uploader.upload(ref, destination, reply_to, log=log)
            except Exception as exc:
                log.append(f"\n💥 <b>Download failed</b>: {html.escape(str(exc), quote=False)}")
                logger.exception("Pipeline failed for %s", url)
                return PipelineResult(url=url, status=PipelineStatus.FAILED, error=str(exc))

        if outcome.status == UploadStatus.TOO_LARGE:
            return PipelineResult(url=url, status=PipelineStatus.TOO_LARGE)
        return PipelineResult(url=url, status=PipelineStatus.UPLOADED, handle=outcome.handle)

    async def process_event(
        self,
        urls: Iterable[str],
        verbose: bool = False,
        *,
        destination: Destination,
        reply_to: Optional[int] = None,
    ) -> list[PipelineResult]:
        """Run one pipeline per URL concurrently; one failure never aborts the others."""
        runs = [self.run(url, verbose, destination=destination, reply_to=reply_to) for url in urls]
        if not runs:
            return []
        return list(await asyncio.gather(*runs))
