"""
Upload stage: sends an artifact to a chat and remembers the remote handle.

A remote handle from an earlier upload in the same context is reused (the
video is re-sent by handle, no bytes are transferred). Artifacts above the
size limit are reported in the log and skipped; that is an outcome, not an
error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from src.shared.errors import ArtifactNotFound
from src.shared.media import MediaReference

from ..cache.memoize import memoize
from ..downloader.dedup import RemoteHandleStore
from ..logchannel import LogSink, NullLogChannel
from ..messaging.base import MessagingClient
from ..messaging.models import Destination, LocalVideo, RemoteVideo, VideoFields


logger = logging.getLogger(__name__)

MB = 1024 * 1024
DEFAULT_MAX_UPLOAD_BYTES = 2048 * MB


class UploadStatus(str, Enum):
    UPLOADED = "uploaded"
    REUSED = "reused"          # Sent again by its stored remote handle
    TOO_LARGE = "too_large"


@dataclass(frozen=True)
class UploadOutcome:
    status: UploadStatus
    handle: Optional[str] = None
    size_bytes: Optional[int] = None
    # Chat the video was sent to; None when nothing was sent
    chat_id: Optional[int] = None


def format_megabytes(size_bytes: int) -> str:
    return f"{size_bytes / MB:.2f} MB"


def _transfer_key(
    ref: MediaReference,
    destination: Destination,
    reply_to: Optional[int] = None,
    *,
    log: Any = None,
    context_id: str = "",
) -> tuple[str, str]:
    return (ref.destination_path, context_id)


class ArtifactUploader:
    """
    Usage:
        uploader = ArtifactUploader(client, handles, max_upload_bytes=2048 * MB)
        handle = await uploader.ensure_uploaded(ref, Destination(chat_id), reply_to, log=log)
        # handle is None when the artifact was too large
    """

    def __init__(
        self,
        client: MessagingClient,
        handles: RemoteHandleStore,
        *,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        keep_downloads: bool = False,
    ) -> None:
        self._client = client
        self._handles = handles
        self._max_upload_bytes = int(max_upload_bytes)
        self._keep_downloads = bool(keep_downloads)
        # Only the byte transfer is shared; every request still gets its video
        self._transfer = memoize(self._transfer_once, key=_transfer_key)

    @property
    def max_upload_bytes(self) -> int:
        return self._max_upload_bytes

    async def ensure_uploaded(
        self,
        ref: MediaReference,
        destination: Destination,
        reply_to: Optional[int] = None,
        *,
        log: Optional[LogSink] = None,
    ) -> Optional[str]:
        """
        Send `ref`'s artifact to `destination`, by stored handle when one exists.

        Returns:
            The remote handle, or None when the artifact exceeds the size limit.

        Raises:
            ArtifactNotFound: No sidecar and no artifact on disk.
            MessagingError: The endpoint rejected the upload.
        """
        outcome = await self.upload(ref, destination, reply_to, log=log)
        return outcome.handle

    async def upload(
        self,
        ref: MediaReference,
        destination: Destination,
        reply_to: Optional[int] = None,
        *,
        log: Optional[LogSink] = None,
    ) -> UploadOutcome:
        """Same as ensure_uploaded, reporting the full outcome."""
        context_id = self._client.context_id
        handle = self._handles.get(Path(ref.destination_path), context_id)
        if handle is None:
            try:
                outcome = await self._transfer(ref, destination, reply_to, log=log, context_id=context_id)
            finally:
                # Later requests go by the sidecar, or re-check size for their own log
                self._transfer.cache.discard((ref.destination_path, context_id))
            # A concurrent transfer for another chat delivered elsewhere
            if outcome.status != UploadStatus.UPLOADED or outcome.chat_id == destination.chat_id:
                return outcome
            handle = outcome.handle

        logger.debug("Re-sending %s by stored handle", ref.destination_path)
        await self._client.send_video(destination, RemoteVideo(handle), self._fields(ref), reply_to=reply_to)
        return UploadOutcome(status=UploadStatus.REUSED, handle=handle, chat_id=destination.chat_id)

    def cache_clear(self) -> None:
        self._transfer.cache_clear()

    async def _transfer_once(
        self,
        ref: MediaReference,
        destination: Destination,
        reply_to: Optional[int] = None,
        *,
        log: Optional[LogSink] = None,
        context_id: str = "",
    ) -> UploadOutcome:
        log = log or NullLogChannel()
        artifact = Path(ref.destination_path)

        if not artifact.is_file():
            raise ArtifactNotFound(str(artifact))

        size = artifact.stat().st_size
        if size > self._max_upload_bytes:
            log.append(
                f"\n😞 Video too large ({format_megabytes(size)} exceeds max size of "
                f"{format_megabytes(self._max_upload_bytes)})"
            )
            logger.info("Not uploading %s: %d bytes over limit %d", artifact, size, self._max_upload_bytes)
            return UploadOutcome(status=UploadStatus.TOO_LARGE, size_bytes=size)

        log.append("\n🚀 <b>Uploading...</b>")
        sent = await self._client.send_video(destination, LocalVideo(artifact), self._fields(ref), reply_to=reply_to)
        self._handles.put(artifact, context_id, sent.file_id)
        logger.info("Uploaded %s to chat %s (%d bytes)", artifact, destination.chat_id, size)

        if not self._keep_downloads:
            try:
                artifact.unlink()
            except FileNotFoundError:
                pass
        return UploadOutcome(
            status=UploadStatus.UPLOADED, handle=sent.file_id, size_bytes=size, chat_id=destination.chat_id
        )

    @staticmethod
    def _fields(ref: MediaReference) -> VideoFields:
        duration = ref.effective_duration
        return VideoFields(
            caption=ref.caption,
            width=ref.width,
            height=ref.height,
            duration=round(duration) if duration is not None else None,
        )
