"""
Download stage: makes sure the artifact for a MediaReference is on disk.

The download replays the info document resolved by the metadata cache
(`yt-dlp --load-info-json`), so the source site is never scraped twice for
one item. Nothing is downloaded when the item was already uploaded in this
context or the artifact already exists.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from src.shared.errors import ArtifactNotFound
from src.shared.media import MediaReference

from ..cache.memoize import memoize
from ..fs.storage import StorageLayout
from ..logchannel import LogSink, NullLogChannel
from ..tool.ytdlp import YtDlp
from .dedup import DedupResult, RemoteHandleStore


logger = logging.getLogger(__name__)


class DownloadStatus(str, Enum):
    """Status of a single download."""
    DOWNLOADED = "downloaded"
    ALREADY_SATISFIED = "already_satisfied"


@dataclass(frozen=True)
class DownloadOutcome:
    status: DownloadStatus
    artifact_path: Path
    # Why nothing was downloaded (set when ALREADY_SATISFIED)
    reason: Optional[DedupResult] = None
    # yt-dlp stdout (set when DOWNLOADED)
    output: str = ""


def _download_key(ref: MediaReference, verbose: bool = False, *, log: Any = None) -> str:
    return ref.destination_path


class ArtifactDownloader:
    """
    Usage:
        downloader = ArtifactDownloader(ytdlp, layout, handles, context_id=lambda: client.context_id)
        outcome = await downloader.ensure_downloaded(ref, log=log)
    """

    def __init__(
        self,
        ytdlp: YtDlp,
        layout: StorageLayout,
        handles: RemoteHandleStore,
        *,
        context_id: Callable[[], str],
    ) -> None:
        self._ytdlp = ytdlp
        self._layout = layout
        self._handles = handles
        self._context_id = context_id
        self.ensure_downloaded = memoize(self._ensure_downloaded, key=_download_key)

    async def _ensure_downloaded(
        self,
        ref: MediaReference,
        verbose: bool = False,
        *,
        log: Optional[LogSink] = None,
    ) -> DownloadOutcome:
        """
        Download the artifact unless it is already uploaded or on disk.

        Raises:
            ToolTimeout, ToolSignalTermination, ToolExitError: yt-dlp failed.
            ArtifactNotFound: yt-dlp reported success but wrote no file.
        """
        log = log or NullLogChannel()
        check = self._handles.check(ref.destination_path, self._context_id())
        if check.satisfied:
            logger.debug("Skipping download of %s (%s)", ref.destination_path, check.result.value)
            return DownloadOutcome(
                status=DownloadStatus.ALREADY_SATISFIED,
                artifact_path=check.artifact_path,
                reason=check.result,
            )

        log.append("⬇️ <b>Downloading...</b>")
        info_path = self._write_info_json(ref)
        try:
            result = await self._ytdlp.download(
                str(info_path),
                verbose=verbose,
                on_stderr_line=lambda line: log.append(line, sanitize=True),
            )
        finally:
            info_path.unlink(missing_ok=True)

        artifact = Path(ref.destination_path)
        if not artifact.is_file():
            raise ArtifactNotFound(str(artifact))
        logger.info("Downloaded %s", artifact)
        return DownloadOutcome(status=DownloadStatus.DOWNLOADED, artifact_path=artifact, output=result.stdout)

    def _write_info_json(self, ref: MediaReference) -> Path:
        tmp_dir = self._layout.paths.tmp
        tmp_dir.mkdir(parents=True, exist_ok=True)
        fd, path_str = tempfile.mkstemp(dir=str(tmp_dir), suffix=".info.json")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(dict(ref.info), f)
        return Path(path_str)
