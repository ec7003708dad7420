"""
Human-readable summaries written to the log channel and the diagnostic log.
"""

from __future__ import annotations

import html
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from src.shared.media import MediaReference

from ..logchannel import LogSink
from ..uploader.uploader import format_megabytes


logger = logging.getLogger(__name__)

FORMAT_COLUMNS = ("format", "ext", "vcodec", "vbr", "acodec", "abr", "mb")


def _codec(codec: Optional[str], bitrate: Optional[float]) -> Optional[str]:
    if not codec or codec == "none":
        return None
    if bitrate:
        return f"{codec} @ {bitrate:g} kbps"
    return codec


def _duration(ref: MediaReference) -> Optional[str]:
    if ref.duration is None:
        return None
    effective = ref.effective_duration or 0.0
    text = f"{round(effective)} sec"
    if ref.skipped_seconds > 0:
        text += f" ({round(ref.duration)}s before removing sponsors)"
    return text


def video_info_lines(ref: MediaReference) -> list[str]:
    """Lines of the `🎬 Video info` block, values HTML-escaped."""
    fields = [
        ("URL", ref.canonical_url),
        ("filename", Path(ref.destination_path).name),
        ("duration", _duration(ref)),
        ("resolution", ref.resolution),
        ("size", f"~{format_megabytes(ref.size_estimate)}" if ref.size_estimate else None),
        ("video codec", _codec(ref.video_codec, ref.video_bitrate)),
        ("audio codec", _codec(ref.audio_codec, ref.audio_bitrate)),
    ]
    lines = ["\n🎬 <b>Video info:</b>\n"]
    for name, value in fields:
        if value:
            lines.append(f"<b>{name}</b>: {html.escape(str(value), quote=False)}")
    return lines


def send_video_info(log: LogSink, ref: MediaReference, verbose: bool = False) -> None:
    for line in video_info_lines(ref):
        log.append(line)
    if verbose:
        log_formats(ref.info.get("formats") or ())


def format_rows(formats: Iterable[Any]) -> list[dict[str, Any]]:
    rows = []
    for fmt in formats:
        if not isinstance(fmt, Mapping):
            continue
        size = fmt.get("filesize") or fmt.get("filesize_approx")
        rows.append({
            "format": fmt.get("format") or fmt.get("format_id"),
            "ext": fmt.get("ext"),
            "vcodec": fmt.get("vcodec"),
            "vbr": fmt.get("vbr"),
            "acodec": fmt.get("acodec"),
            "abr": fmt.get("abr"),
            "mb": round(size / 1024 / 1024, 2) if isinstance(size, (int, float)) else None,
        })
    return rows


def log_formats(formats: Iterable[Any]) -> None:
    """Write the available formats as a table to the diagnostic logger."""
    rows = format_rows(formats)
    if not rows:
        return
    cells = [[("" if row[col] is None else str(row[col])) for col in FORMAT_COLUMNS] for row in rows]
    widths = [max(len(col), *(len(r[i]) for r in cells)) for i, col in enumerate(FORMAT_COLUMNS)]
    header = "  ".join(col.ljust(w) for col, w in zip(FORMAT_COLUMNS, widths))
    body = ["  ".join(c.ljust(w) for c, w in zip(r, widths)) for r in cells]
    logger.info("Available formats:\n%s", "\n".join([header, *body]))
