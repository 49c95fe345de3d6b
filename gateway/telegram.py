"""Thin async client for the Telegram Bot API.

Only the handful of methods the back office needs.  Every call is a JSON
POST to ``<api_url>/bot<token>/<method>``; failures are retried with a
linear backoff (1s, 2s, …) and surface as ``TelegramError`` once the
attempts run out.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Sequence

import httpx

log = logging.getLogger("gateway.telegram")

MAX_MESSAGE_LENGTH = 4096
MAX_CALLBACK_DATA = 64  # bytes

_TAG_RE = re.compile(r"<(/?)([a-zA-Z][a-zA-Z0-9-]*)[^>]*>")
_CLOSING_RESERVE = 64


class TelegramError(Exception):
    """A Bot API call failed after all retries."""

    def __init__(self, method: str, description: str, error_code: int | None = None) -> None:
        super().__init__(f"{method}: {description}")
        self.method = method
        self.description = description
        self.error_code = error_code


def button(text: str, data: str) -> dict[str, str]:
    """One inline keyboard button.  Callback data over 64 bytes is truncated."""
    raw = data.encode("utf-8")
    if len(raw) > MAX_CALLBACK_DATA:
        log.warning("Callback data too long (%d bytes), truncating: %s", len(raw), data)
        data = raw[:MAX_CALLBACK_DATA].decode("utf-8", errors="ignore")
    return {"text": text, "callback_data": data}


def chunk(items: Sequence[Any], size: int) -> list[list[Any]]:
    """Split buttons into keyboard rows of ``size``."""
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def truncate_html(text: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    """Shorten HTML-mode text to ``limit`` without leaving broken markup.

    A tag or entity cut in half is dropped and tags still open at the cut
    are closed, so Telegram can still parse the result.
    """
    if len(text) <= limit:
        return text

    cut = text[:limit - _CLOSING_RESERVE]
    lt = cut.rfind("<")
    if lt > cut.rfind(">"):
        cut = cut[:lt]
    amp = cut.rfind("&")
    if amp > cut.rfind(";"):
        cut = cut[:amp]

    open_tags: list[str] = []
    for match in _TAG_RE.finditer(cut):
        name = match.group(2).lower()
        if not match.group(1):
            open_tags.append(name)
        elif name in open_tags:
            del open_tags[len(open_tags) - 1 - open_tags[::-1].index(name)]

    closing = "".join(f"</{name}>" for name in reversed(open_tags))
    log.warning("Message of %d chars truncated to fit Telegram's limit", len(text))
    return f"{cut}…{closing}"


class TelegramClient:
    """Async Bot API client.

    Pass ``http`` to share (or, in tests, mock) the underlying
    ``httpx.AsyncClient``; otherwise one is created and owned here.
    """

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.telegram.org",
        http: httpx.AsyncClient | None = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self._base = f"{api_url.rstrip('/')}/bot{token}"
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=15)
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def request(
        self, method: str, payload: dict[str, Any], retries: int | None = None
    ) -> dict[str, Any]:
        """Call ``method`` and return the decoded response body.

        A 400 "message is not modified" counts as success: re-rendering an
        identical message is harmless.
        """
        attempts = retries or self._max_retries
        last: TelegramError | None = None

        for attempt in range(1, attempts + 1):
            try:
                resp = await self._http.post(f"{self._base}/{method}", json=payload)
                data = resp.json()
            except (httpx.HTTPError, ValueError) as exc:
                last = TelegramError(method, str(exc) or type(exc).__name__)
            else:
                if data.get("ok"):
                    return data
                description = data.get("description", f"HTTP {resp.status_code}")
                if data.get("error_code") == 400 and "message is not modified" in description:
                    log.debug("%s: message not modified", method)
                    return data
                last = TelegramError(method, description, data.get("error_code"))

            log.warning("Telegram %s attempt %d/%d failed: %s", method, attempt, attempts, last.description)
            if attempt < attempts:
                await asyncio.sleep(self._retry_delay * attempt)

        log.error("Telegram %s failed after %d attempts", method, attempts)
        raise last

    # ── Bot API methods ───────────────────────────────────────

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        keyboard: list[list[dict[str, str]]] | None = None,
    ) -> dict[str, Any]:
        if not text or not text.strip():
            raise ValueError("Message text must not be empty")
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "text": truncate_html(text),
            "parse_mode": "HTML",
        }
        if keyboard:
            payload["reply_markup"] = {"inline_keyboard": keyboard}
        return await self.request("sendMessage", payload)

    async def edit_message(
        self,
        chat_id: int | str,
        message_id: int,
        text: str,
        keyboard: list[list[dict[str, str]]] | None = None,
        retries: int | None = None,
    ) -> dict[str, Any]:
        if not text or not text.strip():
            raise ValueError("Message text must not be empty")
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": truncate_html(text),
            "parse_mode": "HTML",
        }
        if keyboard is not None:
            payload["reply_markup"] = {"inline_keyboard": keyboard}
        return await self.request("editMessageText", payload, retries=retries)

    async def answer_callback_query(
        self, callback_query_id: str, text: str = "", show_alert: bool = False
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"callback_query_id": callback_query_id, "show_alert": show_alert}
        if text:
            payload["text"] = text
        return await self.request("answerCallbackQuery", payload, retries=2)

    async def send_chat_action(self, chat_id: int | str, action: str = "typing") -> None:
        """Best effort: a failed "typing…" indicator is only logged."""
        try:
            await self.request("sendChatAction", {"chat_id": chat_id, "action": action}, retries=1)
        except TelegramError as exc:
            log.debug("sendChatAction failed: %s", exc)
