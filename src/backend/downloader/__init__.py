"""
Artifact downloader with deduplication support.

Provides:
- Sidecar-based remote-handle store and on-disk dedup checks (dedup.py)
- The download stage of the per-URL pipeline (downloader.py)
"""

from .dedup import DedupCheckResult, DedupResult, RemoteHandleStore
from .downloader import ArtifactDownloader, DownloadOutcome, DownloadStatus

__all__ = [
    "DedupCheckResult",
    "DedupResult",
    "RemoteHandleStore",
    "ArtifactDownloader",
    "DownloadOutcome",
    "DownloadStatus",
]
