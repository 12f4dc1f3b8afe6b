"""Handler for Telegram bot webhook updates.

Supports ``/start`` and ``/tldr <url>``. The webhook must answer quickly, so
summaries are produced by a follow-up job that server.py runs after the
response has been sent.
"""

from __future__ import annotations

import hmac
from typing import TYPE_CHECKING

import structlog

from tubetldr.errors import ErrorCode, TubeTldrError
from tubetldr.notifier import (
    FAILURE_MESSAGE,
    USAGE_MESSAGE,
    WELCOME_MESSAGE,
    format_result_message,
)
from tubetldr.youtube import extract_video_id

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from tubetldr.protocols import NotifierProtocol
    from tubetldr.state import AppState

log = structlog.get_logger()


def _check_secret(provided: str | None, state: AppState) -> None:
    expected = state.settings.telegram.webhook_secret
    if not expected:
        log.warning("telegram_webhook_secret_missing")
    if not expected or not provided or not hmac.compare_digest(provided, expected):
        raise TubeTldrError(
            code=ErrorCode.UNAUTHORIZED,
            message="Invalid webhook secret token.",
            suggestion="Set the same secret_token in setWebhook and in the server config.",
            recoverable=False,
        )


def _reply(
    notifier: NotifierProtocol, chat_id: int | str, text: str
) -> Callable[[], Awaitable[None]]:
    async def _send() -> None:
        await notifier.send_message(chat_id, text)

    return _send


def handle(
    update: dict,
    secret_token: str | None,
    state: AppState,
) -> Callable[[], Awaitable[None]] | None:
    """Dispatch one update. Returns the follow-up job to run after responding, if any."""
    notifier = state.notifier
    if notifier is None:
        raise TubeTldrError(
            code=ErrorCode.NOT_CONFIGURED,
            message="Telegram bot is not configured.",
            suggestion="Set TUBETLDR__TELEGRAM__BOT_TOKEN to enable the webhook.",
            recoverable=False,
        )
    _check_secret(secret_token, state)

    message = update.get("message")
    if not isinstance(message, dict):
        return None
    chat = message.get("chat")
    text = message.get("text")
    chat_id = chat.get("id") if isinstance(chat, dict) else None
    if not isinstance(chat_id, int | str) or not isinstance(text, str) or not text.strip():
        return None

    log = structlog.get_logger().bind(handler="telegram_webhook", chat_id=chat_id)

    command, *args = text.split()
    # Group chats address commands as /command@BotName.
    command = command.partition("@")[0]

    if command == "/start":
        log.info("telegram_command", command="start")
        return _reply(notifier, chat_id, WELCOME_MESSAGE)

    if command == "/tldr":
        video_id = extract_video_id(args[0]) if args else None
        if video_id is None:
            log.info("telegram_command", command="tldr", valid=False)
            return _reply(notifier, chat_id, USAGE_MESSAGE)

        log.info("telegram_command", command="tldr", subject_id=video_id)
        language = state.settings.youtube.default_language
        model = state.settings.generation.default_model

        async def _summarize_and_reply() -> None:
            try:
                response = await state.orchestrator.summarize(video_id, language, model)
            except Exception:
                log.error("telegram_summary_failed", subject_id=video_id, exc_info=True)
                await notifier.send_message(chat_id, FAILURE_MESSAGE)
                return
            await notifier.send_message(chat_id, format_result_message(response))

        return _summarize_and_reply

    return None
