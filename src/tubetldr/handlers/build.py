"""Handler for the summary endpoint.

Receives AppState, validates input, delegates to the orchestrator and returns
the wire dict. No Starlette imports: server.py handles the HTTP wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from tubetldr.errors import ErrorCode, TubeTldrError
from tubetldr.models.requests import BuildInput

if TYPE_CHECKING:
    from tubetldr.state import AppState


def validate(
    subject: str | None,
    language: str | None,
    model: str | None,
    state: AppState,
) -> BuildInput:
    """Apply defaults and validate. Raises INVALID_INPUT before any upstream call."""
    if not subject:
        raise TubeTldrError(
            code=ErrorCode.INVALID_INPUT,
            message="Missing video reference.",
            suggestion="Pass a YouTube URL as 'url' or a video id as 'videoId'.",
            recoverable=False,
        )
    try:
        return BuildInput(
            subject=subject,
            language=language or state.settings.youtube.default_language,
            model_id=model or state.settings.generation.default_model,
        )
    except ValidationError as exc:
        raise TubeTldrError(
            code=ErrorCode.INVALID_INPUT,
            message="; ".join(err["msg"] for err in exc.errors()),
            suggestion="Provide a valid YouTube URL or 11-character video id, "
            "a language code such as 'en', and a model name.",
            recoverable=False,
        ) from exc


async def handle(
    subject: str | None,
    language: str | None,
    model: str | None,
    state: AppState,
) -> dict:
    """Handle a summary request."""
    validated = validate(subject, language, model, state)
    log = structlog.get_logger().bind(handler="build", subject_id=validated.subject)
    log.info("handler_called", language=validated.language, model=validated.model_id)

    response = await state.orchestrator.summarize(
        validated.subject, validated.language, validated.model_id
    )
    log.info("handler_complete", cached=response.cached, reason=response.reason)
    return response.to_wire()
