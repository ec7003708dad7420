"""
Media reference model parsed from a yt-dlp info document.

A MediaReference is created from the first successful metadata fetch and is
never mutated afterwards; the raw document is kept alongside the parsed
fields so the download stage can hand it back to yt-dlp unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from src.shared.errors import UpstreamParseError


SKIP_SEGMENT_TYPE = "skip"


def _opt_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _opt_int(value: Any) -> Optional[int]:
    number = _opt_float(value)
    if number is None:
        return None
    return int(number)


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class SkipSegment:
    """A span of the media (e.g. a sponsor read) that viewers would skip."""
    start: float
    end: float
    category: Optional[str] = None

    @property
    def length(self) -> float:
        return max(0.0, self.end - self.start)

    @staticmethod
    def from_chapter(data: Mapping[str, Any]) -> Optional["SkipSegment"]:
        if data.get("type") != SKIP_SEGMENT_TYPE:
            return None
        start = _opt_float(data.get("start_time"))
        end = _opt_float(data.get("end_time"))
        if start is None or end is None:
            return None
        return SkipSegment(start=start, end=end, category=_opt_str(data.get("category")))


@dataclass(frozen=True)
class MediaReference:
    canonical_url: str
    requested_url: str
    destination_path: str
    title: Optional[str] = None
    duration: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None
    video_codec: Optional[str] = None
    video_bitrate: Optional[float] = None
    audio_codec: Optional[str] = None
    audio_bitrate: Optional[float] = None
    size_estimate: Optional[int] = None
    skip_segments: tuple[SkipSegment, ...] = ()
    info: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @staticmethod
    def from_info(
        info: Any,
        *,
        requested_url: str,
        default_destination: Optional[str] = None,
    ) -> "MediaReference":
        """
        Build a reference from a parsed info document.

        The canonical URL falls back to the requested URL when the extractor
        does not report `webpage_url`.

        Raises:
            UpstreamParseError: The document is not a JSON object or names no output file.
        """
        if not isinstance(info, Mapping):
            raise UpstreamParseError(f"metadata for {requested_url} is not a JSON object")

        destination = _opt_str(info.get("filename")) or _opt_str(info.get("_filename")) or default_destination
        if not destination:
            raise UpstreamParseError(f"metadata for {requested_url} does not name an output file")

        segments = []
        for chapter in info.get("sponsorblock_chapters") or ():
            if isinstance(chapter, Mapping):
                segment = SkipSegment.from_chapter(chapter)
                if segment is not None:
                    segments.append(segment)

        return MediaReference(
            canonical_url=_opt_str(info.get("webpage_url")) or requested_url,
            requested_url=requested_url,
            destination_path=destination,
            title=_opt_str(info.get("title")),
            duration=_opt_float(info.get("duration")),
            width=_opt_int(info.get("width")),
            height=_opt_int(info.get("height")),
            video_codec=_opt_str(info.get("vcodec")),
            video_bitrate=_opt_float(info.get("vbr")),
            audio_codec=_opt_str(info.get("acodec")),
            audio_bitrate=_opt_float(info.get("abr")),
            size_estimate=_opt_int(info.get("filesize") or info.get("filesize_approx")),
            skip_segments=tuple(segments),
            info=dict(info),
        )

    @property
    def skipped_seconds(self) -> float:
        return sum(segment.length for segment in self.skip_segments)

    @property
    def effective_duration(self) -> Optional[float]:
        """Nominal duration minus skip segments, never below zero."""
        if self.duration is None:
            return None
        return max(0.0, self.duration - self.skipped_seconds)

    @property
    def resolution(self) -> Optional[str]:
        explicit = _opt_str(self.info.get("resolution"))
        if explicit:
            return explicit
        if self.height:
            return f"{self.width}x{self.height}" if self.width else f"{self.height}p"
        format_id = _opt_str(self.info.get("format_id"))
        return format_id.upper() if format_id else None

    @property
    def caption(self) -> Optional[str]:
        """
        Human caption for the uploaded video.

        Some extractors put the extractor name or the media id in `title`, or
        use a generic "Video by <user>" title with the real text in `description`.
        """
        title = self.title
        if title is None:
            return None
        extractor = _opt_str(self.info.get("extractor"))
        playlist_title = _opt_str(self.info.get("playlist_title"))
        description = _opt_str(self.info.get("description"))
        if title == extractor and playlist_title:
            return playlist_title
        if (title == _opt_str(self.info.get("id")) or title.startswith("Video by ")) and description:
            return description
        return title
