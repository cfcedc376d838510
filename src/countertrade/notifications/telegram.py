# src/countertrade/notifications/telegram.py
from __future__ import annotations

import asyncio

import aiohttp
import structlog

log = structlog.get_logger()

TELEGRAM_API = "https://api.telegram.org"
TELEGRAM_MAX_LEN = 3900  # below the 4096 hard limit


def split_long_message(text: str, max_len: int = TELEGRAM_MAX_LEN) -> list[str]:
    """
    Split text under the Telegram message limit, cutting on blank lines
    first, then on line breaks, then hard.
    """
    s = (text or "").strip()
    if not s:
        return []
    if len(s) <= max_len:
        return [s]

    parts: list[str] = []
    buf = ""

    for chunk in s.split("\n\n"):
        cand = f"{buf}\n\n{chunk}".strip() if buf else chunk.strip()
        if len(cand) <= max_len:
            buf = cand
            continue

        if buf:
            parts.append(buf)
            buf = ""

        if len(chunk) <= max_len:
            buf = chunk.strip()
            continue

        line_buf = ""
        for line in chunk.splitlines():
            cand = f"{line_buf}\n{line}" if line_buf else line
            if len(cand) <= max_len:
                line_buf = cand
                continue
            if line_buf:
                parts.append(line_buf)
            while len(line) > max_len:
                parts.append(line[:max_len])
                line = line[max_len:]
            line_buf = line
        if line_buf:
            parts.append(line_buf)

    if buf:
        parts.append(buf)

    return [p for p in parts if p.strip()]


class TelegramNotifier:
    """
    Sends operator messages to one channel via the Bot API sendMessage.

    Delivery is best-effort: failures are logged and reported as False.
    """

    def __init__(
        self,
        *,
        session: aiohttp.ClientSession,
        bot_token: str,
        channel_id: str,
        api_url: str = TELEGRAM_API,
    ) -> None:
        self._session = session
        self._url = f"{api_url.rstrip('/')}/bot{bot_token}/sendMessage"
        self._channel_id = channel_id

    async def notify(self, text: str) -> bool:
        parts = split_long_message(text)
        ok = True
        for part in parts:
            ok = await self._send(part) and ok
        return ok

    async def _send(self, text: str) -> bool:
        payload = {"chat_id": self._channel_id, "text": text, "disable_web_page_preview": True}
        try:
            async with self._session.post(self._url, json=payload) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    log.error("telegram.send_failed", status=resp.status, body=body[:300])
                    return False
        except (aiohttp.ClientError, asyncio.TimeoutError, TimeoutError) as e:
            log.error("telegram.send_failed", error_type=type(e).__name__, error=str(e))
            return False
        return True


class NullNotifier:
    """
    Used when no bot token is configured: messages only reach the log.
    """

    async def notify(self, text: str) -> bool:
        log.debug("notify.skipped", text=text)
        return True
