"""
File naming conventions for downloaded artifacts and their sidecars.

Remote-handle sidecar: <artifact path>.<context id>.id

- artifact path: the file yt-dlp writes (taken from the info document)
- context id: identity under which the remote handle is valid (the bot username);
  sanitized so it can never introduce a path separator
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional


SIDECAR_SUFFIX = ".id"

# Characters allowed verbatim in a context id component
_CONTEXT_ID_UNSAFE = re.compile(r"[^A-Za-z0-9_.@-]")

# Characters that are illegal or awkward in file names across platforms
_FILENAME_UNSAFE = re.compile(r'[\x00-\x1f<>:"/\\|?*#]')

MAX_FILENAME_STEM = 100


def sanitize_context_id(context_id: str) -> str:
    """
    Make an execution context id safe to embed in a file name.

    Raises:
        ValueError: If nothing usable remains.
    """
    cleaned = _CONTEXT_ID_UNSAFE.sub("_", (context_id or "").strip()).strip(".")
    if not cleaned:
        raise ValueError(f"invalid context id: {context_id!r}")
    return cleaned


def sidecar_path(artifact_path: Path | str, context_id: str) -> Path:
    """
    Path of the remote-handle sidecar for an artifact in a given context.

    Example:
        >>> sidecar_path("/storage/downloads/youtube/abc.mp4", "mybot")
        PosixPath('/storage/downloads/youtube/abc.mp4.mybot.id')
    """
    path = Path(artifact_path)
    return path.with_name(f"{path.name}.{sanitize_context_id(context_id)}{SIDECAR_SUFFIX}")


def safe_filename(stem: str, extension: str, *, replacement: str = "_") -> str:
    """
    Build a portable file name from free text (e.g. a media title).

    Args:
        stem: Free-text base name.
        extension: Extension with or without leading dot.
        replacement: Substitute for unsafe characters.

    Returns:
        "<cleaned stem>.<ext>", stem truncated to MAX_FILENAME_STEM characters.
    """
    cleaned = _FILENAME_UNSAFE.sub(replacement, stem).strip().strip(".")
    cleaned = re.sub(r"\s+", " ", cleaned)[:MAX_FILENAME_STEM].rstrip()
    if not cleaned:
        cleaned = replacement
    ext = extension.lstrip(".")
    return f"{cleaned}.{ext}" if ext else cleaned


def fallback_artifact_path(
    downloads_dir: Path,
    *,
    extractor: Optional[str],
    media_id: Optional[str],
    title: Optional[str] = None,
    extension: str = "mp4",
) -> Path:
    """
    Artifact path used when the info document does not report a filename.

    Mirrors the `%(extractor)s/%(id)s.%(ext)s` output template.
    """
    folder = safe_filename(extractor or "generic", "")
    stem = media_id or title or "video"
    return Path(downloads_dir) / folder / safe_filename(stem, extension)
