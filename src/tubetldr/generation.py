"""Generation invoker for an Ollama-compatible text generation backend.

One call per cache miss, bounded by an explicit timeout. Timeouts, transport
errors, non-2xx responses and empty output are expected outcomes: they come
back as a ``parse_outcome=error`` result instead of an exception.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx
import structlog

from tubetldr.models.generation import GenerationResult
from tubetldr.parser import parse_generation_output

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tubetldr.config import GenerationSettings
    from tubetldr.models.transcript import TranscriptSegment

log = structlog.get_logger()

_LANGUAGE_NAMES = {
    "en": "English",
    "ru": "Russian",
    "de": "German",
    "es": "Spanish",
    "fr": "French",
    "it": "Italian",
    "pt": "Portuguese",
    "uk": "Ukrainian",
    "ja": "Japanese",
    "zh": "Chinese",
}

_PROMPT_TEMPLATE = """\
Summarize the following video transcript in {language_name}.
Write a short summary (2-3 sentences) and a list of chapters with timestamps
taken from the transcript.

Transcript:
{transcript}

Respond with JSON only, in exactly this shape:
{{
  "summary": "short summary",
  "chapters": [
    {{"time": "00:00", "title": "Chapter title"}},
    {{"time": "02:30", "title": "Next chapter"}}
  ]
}}"""


def format_timestamp(seconds: float) -> str:
    """``75.4`` -> ``"01:15"``; hours are shown only when non-zero."""
    total = int(seconds)
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    return f"{h}:{m:02d}:{s:02d}" if h else f"{m:02d}:{s:02d}"


def format_transcript(segments: Sequence[TranscriptSegment]) -> str:
    """Timestamped transcript lines for the prompt: ``[mm:ss] text``."""
    return "\n".join(f"[{format_timestamp(seg.start)}] {seg.text}" for seg in segments)


def build_prompt(transcript_text: str, language: str, max_chars: int) -> str:
    language_name = _LANGUAGE_NAMES.get(language.split("-")[0].lower(), language)
    return _PROMPT_TEMPLATE.format(
        language_name=language_name,
        transcript=transcript_text[:max_chars],
    )


class GenerationInvoker:
    """Implements GeneratorProtocol against ``POST {host}/api/generate``."""

    def __init__(self, client: httpx.AsyncClient, settings: GenerationSettings) -> None:
        self._client = client
        self._settings = settings

    async def generate(
        self, model_id: str, transcript_text: str, language: str
    ) -> GenerationResult:
        model = model_id or self._settings.default_model
        prompt = build_prompt(transcript_text, language, self._settings.max_prompt_chars)
        body = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self._settings.temperature,
                "top_p": self._settings.top_p,
                "num_ctx": self._settings.num_ctx,
                "num_predict": self._settings.num_predict,
            },
        }
        url = f"{self._settings.host.rstrip('/')}/api/generate"
        timeout = self._settings.timeout_seconds

        try:
            response = await asyncio.wait_for(
                self._client.post(url, json=body, timeout=timeout),
                timeout=timeout,
            )
        except (TimeoutError, httpx.TimeoutException):
            log.warning("generation_timeout", model=model, timeout=timeout)
            return GenerationResult.failed("timeout")
        except httpx.HTTPError as exc:
            log.warning("generation_request_failed", model=model, error=str(exc))
            return GenerationResult.failed(f"request_error: {exc}")

        if not response.is_success:
            log.warning("generation_http_error", model=model, status_code=response.status_code)
            return GenerationResult.failed(f"http_{response.status_code}")

        try:
            raw = response.json().get("response")
        except (ValueError, AttributeError):
            log.warning("generation_bad_payload", model=model, exc_info=True)
            return GenerationResult.failed("bad_payload")
        if not isinstance(raw, str) or not raw.strip():
            log.warning("generation_empty_response", model=model)
            return GenerationResult.failed("empty_response")

        result = parse_generation_output(raw, self._settings.max_chapters)
        log.info(
            "generation_complete",
            model=model,
            parse_outcome=result.parse_outcome,
            chapter_count=len(result.chapters),
            raw_length=len(raw),
        )
        return result
