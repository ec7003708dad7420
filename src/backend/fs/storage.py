"""
Storage directory layout.

Directory structure:
    <storage_root>/_video-info/<cache key>        metadata documents and aliases
    <storage_root>/downloads/<extractor>/<id>.mp4 downloaded artifacts
    <storage_root>/downloads/.../<file>.<ctx>.id  remote-handle sidecars
    <storage_root>/tmp/                           scratch files for yt-dlp
"""

from __future__ import annotations

from pathlib import Path
from typing import NamedTuple


METADATA_DIRNAME = "_video-info"
DOWNLOADS_DIRNAME = "downloads"
TMP_DIRNAME = "tmp"

# yt-dlp output template, relative to the downloads directory
OUTPUT_TEMPLATE = "%(extractor)s/%(id)s.%(ext)s"


class StoragePaths(NamedTuple):
    """Resolved storage paths."""
    root: Path        # <storage_root>/
    metadata: Path    # <storage_root>/_video-info/
    downloads: Path   # <storage_root>/downloads/
    tmp: Path         # <storage_root>/tmp/


class StorageLayout:
    """
    Manages the on-disk layout shared by the cache, downloader and uploader.
    """

    def __init__(self, storage_root: Path | str):
        """
        Initialize the layout.

        Args:
            storage_root: Root directory for all persisted state.
        """
        self._root = Path(storage_root).expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def paths(self) -> StoragePaths:
        return StoragePaths(
            root=self._root,
            metadata=self._root / METADATA_DIRNAME,
            downloads=self._root / DOWNLOADS_DIRNAME,
            tmp=self._root / TMP_DIRNAME,
        )

    @property
    def output_template(self) -> str:
        """Absolute yt-dlp `--output` template for downloads."""
        return str(self.paths.downloads / OUTPUT_TEMPLATE)

    def ensure_dirs(self) -> StoragePaths:
        """
        Create all directories if needed.

        Raises:
            OSError: If directories cannot be created.
        """
        paths = self.paths
        for directory in (paths.metadata, paths.downloads, paths.tmp):
            directory.mkdir(parents=True, exist_ok=True)
        return paths
