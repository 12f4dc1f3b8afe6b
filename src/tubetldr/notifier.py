"""Telegram Bot API notifier.

Sending is fire-and-forget from the caller's point of view: failures are
logged and never propagate into request handling.
"""

from __future__ import annotations

import html
from typing import TYPE_CHECKING

import httpx
import structlog

from tubetldr.models.response import PLACEHOLDER_SUMMARY

if TYPE_CHECKING:
    from tubetldr.config import TelegramSettings
    from tubetldr.models.response import CachedResponse

log = structlog.get_logger()

MAX_MESSAGE_CHAPTERS = 10
# Telegram rejects messages over 4096 characters; leave room for markup.
MAX_MESSAGE_LENGTH = 3800
MAX_TITLE_LENGTH = 256
MAX_CHAPTER_TITLE_LENGTH = 120

WELCOME_MESSAGE = (
    "Hi! I summarize YouTube videos and list their chapters.\n\n"
    "Send the command:\n"
    "<code>/tldr https://youtube.com/watch?v=...</code>"
)
USAGE_MESSAGE = "Please add a valid YouTube link after the /tldr command."
FAILURE_MESSAGE = "Could not generate a summary for this video."


def _escape_within(text: str, limit: int) -> str:
    """HTML-escape ``text``, cutting it so the escaped form fits in ``limit``.

    Cuts happen on the raw text, never inside an entity.
    """
    escaped = html.escape(text)
    if len(escaped) <= limit:
        return escaped
    budget = max(limit - 3, 0)
    cut = budget
    candidate = html.escape(text[:cut])
    while len(candidate) > budget:
        cut -= len(candidate) - budget
        candidate = html.escape(text[: max(cut, 0)])
    return candidate.rstrip() + "..."


def format_result_message(response: CachedResponse) -> str:
    """Render a summary response as Telegram HTML, at most MAX_MESSAGE_LENGTH chars.

    Title and chapter lines are capped first; the summary gets what is left.
    """
    if response.reason is not None or response.summary == PLACEHOLDER_SUMMARY:
        return FAILURE_MESSAGE

    head = ""
    if response.title:
        head = f"<b>{_escape_within(response.title, MAX_TITLE_LENGTH)}</b>"

    if response.chapters:
        lines = [
            f"{i}. {_escape_within(ch.time, 16)} — "
            f"{_escape_within(ch.title, MAX_CHAPTER_TITLE_LENGTH)}"
            for i, ch in enumerate(response.chapters[:MAX_MESSAGE_CHAPTERS], start=1)
        ]
        tail = "<b>Chapters</b>\n" + "\n".join(lines)
    else:
        tail = "<i>No chapters found</i>"

    separators = 2 * (2 if head else 1)
    budget = MAX_MESSAGE_LENGTH - len(head) - len(tail) - separators
    summary = _escape_within(response.summary, budget)
    return "\n\n".join(part for part in (head, summary, tail) if part)


class TelegramNotifier:
    """Implements NotifierProtocol via ``sendMessage``."""

    def __init__(self, client: httpx.AsyncClient, settings: TelegramSettings) -> None:
        self._client = client
        self._settings = settings

    @property
    def enabled(self) -> bool:
        return bool(self._settings.bot_token)

    async def send_message(self, chat_id: int | str, text: str) -> None:
        url = f"{self._settings.api_base.rstrip('/')}/bot{self._settings.bot_token}/sendMessage"
        try:
            response = await self._client.post(
                url,
                json={"chat_id": chat_id, "text": text, "parse_mode": "HTML"},
                timeout=10.0,
            )
            if not response.is_success:
                log.warning(
                    "telegram_send_failed", chat_id=chat_id, status_code=response.status_code
                )
        except httpx.HTTPError:
            log.warning("telegram_send_failed", chat_id=chat_id, exc_info=True)
