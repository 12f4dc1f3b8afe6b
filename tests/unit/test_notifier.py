"""Unit tests for tubetldr.notifier."""

from __future__ import annotations

import json
import re
from datetime import UTC, datetime
from unittest.mock import MagicMock

import httpx
import respx

from tubetldr.config import TelegramSettings
from tubetldr.models.generation import Chapter
from tubetldr.models.response import PLACEHOLDER_SUMMARY, CachedResponse, ResponseReason
from tubetldr.notifier import (
    FAILURE_MESSAGE,
    MAX_MESSAGE_CHAPTERS,
    MAX_MESSAGE_LENGTH,
    TelegramNotifier,
    format_result_message,
)

SETTINGS = TelegramSettings(bot_token="123:abc", api_base="https://tg.test")
SEND_URL = "https://tg.test/bot123:abc/sendMessage"


def _response(**overrides) -> CachedResponse:
    fields = {
        "subject_id": "dQw4w9WgXcQ",
        "title": "Cats & <Dogs>",
        "summary": "A summary.",
        "chapters": [Chapter(time="00:00", title="Intro")],
        "model_id": "m1",
        "processed_at": datetime(2026, 1, 1, tzinfo=UTC),
    }
    fields.update(overrides)
    return CachedResponse(**fields)


class TestFormatResultMessage:
    def test_title_is_escaped(self) -> None:
        text = format_result_message(_response())
        assert "<b>Cats &amp; &lt;Dogs&gt;</b>" in text
        assert "A summary." in text
        assert "1. 00:00 — Intro" in text

    def test_no_chapters(self) -> None:
        assert "<i>No chapters found</i>" in format_result_message(_response(chapters=[]))

    def test_chapters_limited(self) -> None:
        chapters = [Chapter(time=f"{i:02d}:00", title=f"Part {i}") for i in range(15)]
        text = format_result_message(_response(chapters=chapters))
        assert f"{MAX_MESSAGE_CHAPTERS}. " in text
        assert f"{MAX_MESSAGE_CHAPTERS + 1}. " not in text

    def test_degraded_response_gets_failure_message(self) -> None:
        degraded = _response(summary=PLACEHOLDER_SUMMARY, reason=ResponseReason.NO_SUBTITLES)
        assert format_result_message(degraded) == FAILURE_MESSAGE

    def test_missing_title_omitted(self) -> None:
        assert format_result_message(_response(title=None)).startswith("A summary.")

    def test_long_summary_truncated(self) -> None:
        summary = "Cats & dogs. " * 1000
        chapters = [Chapter(time=f"{i:02d}:00", title="x" * 300) for i in range(12)]
        text = format_result_message(
            _response(title="T" * 1000, summary=summary, chapters=chapters)
        )
        assert len(text) <= MAX_MESSAGE_LENGTH
        summary_part = text.split("\n\n")[1]
        assert summary_part.startswith("Cats &amp; dogs.")
        assert summary_part.endswith("...")
        assert "<b>Chapters</b>" in text

    def test_truncation_does_not_split_entities(self) -> None:
        text = format_result_message(_response(summary="<&>" * 3000, chapters=[]))
        assert len(text) <= MAX_MESSAGE_LENGTH
        body = text.split("\n\n")[1].removesuffix("...")
        assert "&" not in re.sub(r"&(lt|gt|amp);", "", body)

    def test_short_message_untouched(self) -> None:
        text = format_result_message(_response())
        assert "..." not in text


class TestTelegramNotifier:
    def test_enabled_requires_token(self) -> None:
        client = MagicMock(spec=httpx.AsyncClient)
        assert TelegramNotifier(client, SETTINGS).enabled is True
        assert TelegramNotifier(client, TelegramSettings()).enabled is False

    async def test_send_message(self) -> None:
        with respx.mock:
            route = respx.post(SEND_URL).mock(return_value=httpx.Response(200, json={"ok": True}))
            async with httpx.AsyncClient() as client:
                await TelegramNotifier(client, SETTINGS).send_message(42, "hello")

        body = json.loads(route.calls[0].request.content)
        assert body == {"chat_id": 42, "text": "hello", "parse_mode": "HTML"}

    async def test_send_failure_does_not_raise(self) -> None:
        with respx.mock:
            respx.post(SEND_URL).mock(side_effect=httpx.ConnectError("Connection refused"))
            async with httpx.AsyncClient() as client:
                await TelegramNotifier(client, SETTINGS).send_message(42, "hello")

    async def test_error_status_does_not_raise(self) -> None:
        with respx.mock:
            respx.post(SEND_URL).mock(return_value=httpx.Response(403))
            async with httpx.AsyncClient() as client:
                await TelegramNotifier(client, SETTINGS).send_message(42, "hello")
