"""
Progressive log channel: a running progress log rendered as one or more chat
messages that are edited in place as lines are appended.

- append() never blocks: it updates local pages and re-arms a debounce timer.
- flush() pushes every page to the endpoint (send, edit, or nothing when the
  text is unchanged). Per-page locks serialize sends and edits of one message.
- A page never exceeds `max_length`; overflow starts a new page prefixed
  with a continuation marker.

Only private chats get a visible log. Other channels keep their lines locally
(mirrored to the Python logger) but never call the endpoint.
"""

from __future__ import annotations

import asyncio
import html
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from src.shared.errors import MessagingError

from ..messaging.base import MessagingClient
from ..messaging.models import Destination, SentMessage


logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 4096
DEFAULT_DEBOUNCE_S = 0.15
CONTINUED_MARKER = "<i>...continued...</i>"


# Longest entity or tag the log itself produces ("&#128512;", "</code>")
_MAX_MARKUP = 10


def _split_point(chunk: str, limit: int) -> int:
    """Largest cut <= limit that leaves no `&...;` entity or `<...>` tag open."""
    cut = limit
    for opener, closer in (("&", ";"), ("<", ">")):
        start = chunk.rfind(opener, max(0, cut - _MAX_MARKUP), cut)
        if start > 0 and chunk.find(closer, start, cut) == -1:
            cut = start
    return cut


class LogSink(Protocol):
    def append(self, line: str, sanitize: bool = False) -> None:
        ...

    async def flush(self) -> None:
        ...


@dataclass
class _Page:
    text: str = ""
    fresh: bool = True
    message: Optional[SentMessage] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def render(self) -> str:
        return self.text.strip()


class LogChannel:
    """
    Usage:
        async with LogChannel(client, Destination(chat_id, "private"), reply_to=msg_id) as log:
            log.append("🧐 <b>Scraping</b> ...")
            log.append(stderr_line, sanitize=True)
        # leaving the block performs the final flush
    """

    def __init__(
        self,
        client: MessagingClient,
        destination: Destination,
        *,
        reply_to: Optional[int] = None,
        initial_text: Optional[str] = None,
        max_length: int = DEFAULT_MAX_LENGTH,
        debounce_s: float = DEFAULT_DEBOUNCE_S,
        enabled: Optional[bool] = None,
    ) -> None:
        if max_length <= len(CONTINUED_MARKER) + 1:
            raise ValueError(f"max_length too small: {max_length}")
        self._client = client
        self._destination = destination
        self._reply_to = reply_to
        self._max_length = int(max_length)
        self._debounce_s = max(0.0, float(debounce_s))
        self._enabled = destination.is_private if enabled is None else bool(enabled)
        self._pages: list[_Page] = [_Page()]
        self._timer: Optional[asyncio.TimerHandle] = None
        self._background: set[asyncio.Task] = set()
        if initial_text:
            self.append(initial_text)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def destination(self) -> Destination:
        return self._destination

    @property
    def pages(self) -> list[str]:
        """Current page texts as they would be sent."""
        return [page.render() for page in self._pages if page.render()]

    @property
    def text(self) -> str:
        return "\n".join(self.pages)

    def append(self, line: str, sanitize: bool = False) -> None:
        logger.debug("[chat %s] %s", self._destination.chat_id, line)
        chunk = (html.escape(line, quote=False) if sanitize else line) + "\n"
        self._add(chunk)
        if self._enabled:
            self._schedule()

    async def flush(self) -> None:
        self._cancel_timer()
        if not self._enabled:
            return
        await asyncio.gather(*(self._sync_page(page) for page in list(self._pages)))

    async def aclose(self) -> None:
        """Final flush; waits for any debounced flush still running."""
        self._cancel_timer()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.flush()

    async def __aenter__(self) -> "LogChannel":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ---------------------------------------------------------------------
    # Pages
    # ---------------------------------------------------------------------

    def _add(self, chunk: str) -> None:
        while chunk:
            page = self._pages[-1]
            room = self._max_length - len(page.text)
            if len(chunk) <= room:
                page.text += chunk
                page.fresh = False
                return
            if not page.fresh:
                self._pages.append(_Page(text=CONTINUED_MARKER + "\n"))
                continue
            # Longer than a whole page: hard split, outside any entity or tag.
            cut = _split_point(chunk, room)
            page.text += chunk[:cut]
            page.fresh = False
            chunk = chunk[cut:]

    async def _sync_page(self, page: _Page) -> None:
        async with page.lock:
            text = page.render()
            if not text:
                return
            try:
                if page.message is None:
                    page.message = await self._client.send_message(
                        self._destination, text, reply_to=self._reply_to
                    )
                elif page.message.text != text:
                    page.message = await self._client.edit_message_text(page.message, text)
            except MessagingError as exc:
                logger.warning("Failed to update log message in chat %s: %s", self._destination.chat_id, exc)
            except Exception:
                logger.exception("Unexpected error updating log message in chat %s", self._destination.chat_id)

    # ---------------------------------------------------------------------
    # Debounce
    # ---------------------------------------------------------------------

    def _schedule(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet: lines go out with the next explicit flush.
            return
        self._cancel_timer()
        self._timer = loop.call_later(self._debounce_s, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        task = asyncio.ensure_future(self.flush())
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Debounced flush failed", exc_info=task.exception())

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class NullLogChannel:
    """Log sink for contexts without a visible log; drops everything."""

    def append(self, line: str, sanitize: bool = False) -> None:
        pass

    async def flush(self) -> None:
        pass

    async def aclose(self) -> None:
        pass

    async def __aenter__(self) -> "NullLogChannel":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        pass
