"""
Telegram Bot API client (httpx).

Every request goes through the shared throttle (the endpoint rate-limits
per chat) and the retry helper, which backs off on 429 and 5xx responses and
on transport errors. Other API errors surface as BotApiError immediately.

Uploads: a local Bot API server (`local_mode=True`) reads files straight
from disk, so it is sent a file:// URI; the public endpoint receives a
multipart upload.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import httpx

from src.shared.errors import MessagingError

from ..net.proxy import ProxyConfig
from ..net.retry import RetryConfig, RetryableError, with_retry_async
from ..net.throttle import Throttle
from .models import Destination, LocalVideo, RemoteVideo, SentMessage, SentVideo, VideoFields, VideoSource


logger = logging.getLogger(__name__)

DEFAULT_API_ROOT = "https://api.telegram.org"
DEFAULT_TIMEOUT_S = 60.0
DEFAULT_UPLOAD_TIMEOUT_S = 600.0

TEXT_MESSAGE_OPTIONS: dict[str, Any] = {
    "parse_mode": "HTML",
    "link_preview_options": {"is_disabled": True},
    "disable_notification": True,
}

NOT_MODIFIED = "message is not modified"


class BotApiError(MessagingError):
    def __init__(self, message: str, *, status_code: Optional[int] = None, description: str = "") -> None:
        super().__init__(message, status_code=status_code)
        self.description = description


def _reply_parameters(reply_to: Optional[int]) -> dict[str, Any]:
    if reply_to is None:
        return {}
    return {"reply_parameters": {"message_id": reply_to, "allow_sending_without_reply": True}}


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


class TelegramBotClient:
    """
    Usage:
        client = TelegramBotClient(token=token)
        await client.connect()          # resolves the bot username (context id)
        msg = await client.send_message(Destination(chat_id=42), "hello")
        await client.edit_message_text(msg, "hello again")
        await client.aclose()
    """

    def __init__(
        self,
        *,
        token: str,
        api_root: str = DEFAULT_API_ROOT,
        local_mode: bool = False,
        context_id: Optional[str] = None,
        throttle: Optional[Throttle] = None,
        retry: Optional[RetryConfig] = None,
        proxy: Optional[ProxyConfig] = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        upload_timeout_s: float = DEFAULT_UPLOAD_TIMEOUT_S,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not token or not token.strip():
            raise ValueError("bot token must not be empty")
        self._token = token.strip()
        self._api_root = api_root.rstrip("/")
        self._local_mode = bool(local_mode)
        self._context_id = context_id
        self._throttle = throttle
        self._retry = retry or RetryConfig()
        self._upload_timeout_s = float(upload_timeout_s)
        proxy_url = proxy.get_url() if proxy is not None else None
        self._http = http_client or httpx.AsyncClient(proxy=proxy_url, timeout=timeout_s)

    @property
    def context_id(self) -> str:
        if not self._context_id:
            raise RuntimeError("bot identity unknown: call connect() first")
        return self._context_id

    async def connect(self) -> dict[str, Any]:
        """Fetch the bot's own user record and adopt its username as context id."""
        me = await self._call("getMe", {})
        if not self._context_id:
            self._context_id = str(me.get("username") or me.get("id"))
        logger.info("Connected to Bot API as %s", self._context_id)
        return me

    async def aclose(self) -> None:
        await self._http.aclose()

    # ---------------------------------------------------------------------
    # MessagingClient
    # ---------------------------------------------------------------------

    async def send_message(
        self,
        destination: Destination,
        text: str,
        *,
        reply_to: Optional[int] = None,
    ) -> SentMessage:
        payload = {
            "chat_id": destination.chat_id,
            "text": text,
            **TEXT_MESSAGE_OPTIONS,
            **_reply_parameters(reply_to),
        }
        result = await self._call("sendMessage", payload)
        return SentMessage(
            chat_id=int(result["chat"]["id"]),
            message_id=int(result["message_id"]),
            text=text,
        )

    async def edit_message_text(self, message: SentMessage, text: str) -> SentMessage:
        payload = {
            "chat_id": message.chat_id,
            "message_id": message.message_id,
            "text": text,
            **TEXT_MESSAGE_OPTIONS,
        }
        try:
            await self._call("editMessageText", payload)
        except BotApiError as exc:
            if NOT_MODIFIED not in exc.description:
                raise
        return SentMessage(chat_id=message.chat_id, message_id=message.message_id, text=text)

    async def send_video(
        self,
        destination: Destination,
        video: VideoSource,
        fields: VideoFields,
        *,
        reply_to: Optional[int] = None,
    ) -> SentVideo:
        payload: dict[str, Any] = {
            "chat_id": destination.chat_id,
            **fields.to_payload(),
            **_reply_parameters(reply_to),
        }
        upload: Optional[Path] = None
        if isinstance(video, RemoteVideo):
            payload["video"] = video.file_id
        elif isinstance(video, LocalVideo):
            path = Path(video.path).resolve()
            if self._local_mode:
                payload["video"] = path.as_uri()
            else:
                upload = path
        else:
            raise TypeError(f"unsupported video source: {video!r}")

        result = await self._call("sendVideo", payload, upload=upload, timeout_s=self._upload_timeout_s)
        media = result.get("video") or result.get("animation") or result.get("document") or {}
        file_id = media.get("file_id")
        if not file_id:
            raise BotApiError("sendVideo response carries no file_id", description="missing file_id")
        return SentVideo(
            chat_id=int(result["chat"]["id"]),
            message_id=int(result["message_id"]),
            file_id=str(file_id),
        )

    # ---------------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------------

    async def _call(
        self,
        method: str,
        payload: dict[str, Any],
        *,
        upload: Optional[Path] = None,
        timeout_s: Optional[float] = None,
    ) -> Any:
        async def attempt() -> Any:
            if self._throttle is not None:
                await self._throttle.wait_async(key=payload.get("chat_id"))
            return await self._post(method, payload, upload=upload, timeout_s=timeout_s)

        try:
            return await with_retry_async(attempt, config=self._retry)
        except RetryableError as exc:
            raise BotApiError(str(exc), status_code=exc.status_code) from exc

    async def _post(
        self,
        method: str,
        payload: dict[str, Any],
        *,
        upload: Optional[Path],
        timeout_s: Optional[float],
    ) -> Any:
        url = f"{self._api_root}/bot{self._token}/{method}"
        timeout = timeout_s if timeout_s is not None else httpx.USE_CLIENT_DEFAULT
        try:
            if upload is not None:
                data = {k: _form_value(v) for k, v in payload.items()}
                with open(upload, "rb") as fh:
                    resp = await self._http.post(
                        url,
                        data=data,
                        files={"video": (upload.name, fh, "video/mp4")},
                        timeout=timeout,
                    )
            else:
                resp = await self._http.post(url, json=payload, timeout=timeout)
        except httpx.TransportError as exc:
            raise RetryableError(f"{method}: {exc.__class__.__name__}: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.status_code < 400 and body.get("ok"):
            return body.get("result")

        status = int(body.get("error_code") or resp.status_code)
        description = str(body.get("description") or resp.reason_phrase or "unknown error")
        message = f"{method} failed ({status}): {description}"
        if status == 429 or status >= 500:
            parameters = body.get("parameters") or {}
            retry_after = parameters.get("retry_after") if isinstance(parameters, dict) else None
            raise RetryableError(message, status_code=status, retry_after=retry_after)
        raise BotApiError(message, status_code=status, description=description)
