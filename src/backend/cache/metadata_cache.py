"""
Metadata cache: URL -> yt-dlp info document, persisted per content item.

Lookup order for `get_info(url)`:
1. in-process memo (single-flight, keyed on cache_key(url))
2. the stored document for cache_key(url), following aliases
3. a fresh `yt-dlp --dump-json` scrape

A fresh document is stored under the key of its canonical URL (webpage_url);
the requested URL, when different, becomes an alias to it. Stored documents
are never overwritten except by an explicit refresh.
"""

from __future__ import annotations

import html
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

from src.shared.media import MediaReference

from ..fs.hashing import cache_key
from ..fs.naming import fallback_artifact_path
from ..logchannel import LogSink, NullLogChannel
from ..tool.ytdlp import YtDlp
from .memoize import SKIP, memoize
from .metadata_store import MetadataStore, parse_document


logger = logging.getLogger(__name__)


def extract_json_text(stdout: str) -> str:
    """
    Pick the JSON document out of the tool's stdout.

    The document is printed on one line; with --update the tool may print
    status lines before it.
    """
    lines = [line.strip() for line in stdout.splitlines() if line.strip()]
    for line in reversed(lines):
        if line.startswith("{"):
            return line
    return stdout.strip()


def _info_key(url: str, verbose: bool = False, *, log: Any = None, refresh: bool = False) -> Any:
    return SKIP if refresh else cache_key(url)


class MetadataCache:
    """
    Usage:
        metadata = MetadataCache(MetadataStore(layout.paths.metadata), ytdlp)
        ref = await metadata.get_info(url, log=log)
    """

    def __init__(self, store: MetadataStore, ytdlp: YtDlp, *, downloads_dir: Optional[Path] = None) -> None:
        self._store = store
        self._ytdlp = ytdlp
        self._downloads_dir = Path(downloads_dir) if downloads_dir is not None else None
        self.get_info = memoize(self._get_info, key=_info_key)

    @property
    def store(self) -> MetadataStore:
        return self._store

    async def _get_info(
        self,
        url: str,
        verbose: bool = False,
        *,
        log: Optional[LogSink] = None,
        refresh: bool = False,
    ) -> MediaReference:
        """
        Resolve metadata for `url`.

        Raises:
            UpstreamParseError: The stored or scraped document is malformed.
            ToolTimeout, ToolSignalTermination, ToolExitError: The scrape failed.
        """
        log = log or NullLogChannel()
        key = cache_key(url)

        if refresh:
            # The refreshed result replaces whatever the memo held for this URL.
            self.get_info.cache.discard(key)
        else:
            document = self._store.load(key)
            if document is not None:
                logger.debug("Metadata cache hit for %s (%s)", url, key)
                return self._reference(document, url)

        log.append(f"🧐 <b>Scraping</b> {html.escape(url)}...")
        result = await self._ytdlp.dump_info(
            url,
            verbose=verbose,
            on_stderr_line=lambda line: log.append(line, sanitize=True),
        )
        text = extract_json_text(result.stdout)
        document = parse_document(text, source=url)
        ref = self._reference(document, url)
        self._persist(key, ref, text, refresh=refresh)
        return ref

    def _persist(self, requested_key: str, ref: MediaReference, text: str, *, refresh: bool) -> None:
        canonical_key = cache_key(ref.canonical_url)
        if refresh:
            self._store.replace(canonical_key, text)
            logger.info("Refreshed metadata for %s (%s)", ref.canonical_url, canonical_key)
        elif self._store.put_if_absent(canonical_key, text):
            logger.info("Stored metadata for %s (%s)", ref.canonical_url, canonical_key)

        if canonical_key != requested_key:
            if self._store.add_alias(requested_key, canonical_key):
                logger.debug("Aliased %s -> %s", ref.requested_url, ref.canonical_url)

    def _reference(self, document: Mapping[str, Any], url: str) -> MediaReference:
        default_destination = None
        if self._downloads_dir is not None:
            default_destination = str(
                fallback_artifact_path(
                    self._downloads_dir,
                    extractor=document.get("extractor"),
                    media_id=document.get("id"),
                    title=document.get("title"),
                    extension=str(document.get("ext") or "mp4"),
                )
            )
        return MediaReference.from_info(document, requested_url=url, default_destination=default_destination)
