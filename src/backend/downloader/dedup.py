"""
Download/upload deduplication based on what is already on disk.

Two signals, checked in order:
- a remote-handle sidecar for the current context: the item was already
  uploaded, so neither the download nor the upload needs the bytes again
- the artifact itself at its destination path: already downloaded

Sidecars are written only after the endpoint acknowledged an upload, and are
never expired.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from ..fs.naming import sidecar_path


logger = logging.getLogger(__name__)


class DedupResult(str, Enum):
    """Result of a deduplication check."""
    NEW = "new"                  # Nothing on disk, work is needed
    DOWNLOADED = "downloaded"    # Artifact present
    UPLOADED = "uploaded"        # Remote handle present for this context


@dataclass(frozen=True)
class DedupCheckResult:
    result: DedupResult
    artifact_path: Path
    remote_handle: Optional[str] = None

    @property
    def satisfied(self) -> bool:
        return self.result != DedupResult.NEW


class RemoteHandleStore:
    """
    Remote handles persisted as `<artifact>.<context id>.id` text files.

    Usage:
        handles = RemoteHandleStore()
        handles.put(artifact, "mybot", file_id)
        handles.get(artifact, "mybot")  # -> file_id
    """

    def path_for(self, artifact_path: Path | str, context_id: str) -> Path:
        return sidecar_path(artifact_path, context_id)

    def get(self, artifact_path: Path | str, context_id: str) -> Optional[str]:
        path = self.path_for(artifact_path, context_id)
        try:
            handle = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        if not handle:
            logger.warning("Ignoring empty remote-handle sidecar %s", path)
            return None
        return handle

    def put(self, artifact_path: Path | str, context_id: str, handle: str) -> Path:
        """
        Persist a remote handle (atomic replace).

        Raises:
            ValueError: Empty handle.
            OSError: The sidecar cannot be written.
        """
        if not handle or not handle.strip():
            raise ValueError("remote handle must not be empty")
        path = self.path_for(artifact_path, context_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path_str = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        tmp_path = Path(tmp_path_str)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(handle.strip())
            os.replace(tmp_path, path)
        finally:
            tmp_path.unlink(missing_ok=True)
        return path

    def check(self, artifact_path: Path | str, context_id: str) -> DedupCheckResult:
        """Classify an artifact by what is already on disk."""
        artifact = Path(artifact_path)
        handle = self.get(artifact, context_id)
        if handle is not None:
            return DedupCheckResult(result=DedupResult.UPLOADED, artifact_path=artifact, remote_handle=handle)
        if artifact.is_file():
            return DedupCheckResult(result=DedupResult.DOWNLOADED, artifact_path=artifact)
        return DedupCheckResult(result=DedupResult.NEW, artifact_path=artifact)
