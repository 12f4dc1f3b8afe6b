"""Ordered transcript acquisition.

Strategies are tried in a fixed priority order until one yields segments.
"No transcript" is a valid terminal outcome, not an error: the chain always
returns a TranscriptResult. A strategy that raises is logged and counted as
an empty ``fetch_error`` result, and the next strategy runs. New sources are
added by appending to the strategy list.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from tubetldr.models.transcript import SourceReason, TranscriptResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tubetldr.protocols import TranscriptStrategy

log = structlog.get_logger()


def preferred_languages(language: str, fallbacks: Sequence[str]) -> list[str]:
    """Requested language first, then configured fallbacks, without repeats."""
    ordered: list[str] = []
    for lang in [language, *fallbacks]:
        lang = lang.strip()
        if lang and lang not in ordered:
            ordered.append(lang)
    return ordered


class FallbackSourceChain:
    """Implements TranscriptSourceProtocol over an ordered list of strategies."""

    def __init__(self, strategies: Sequence[TranscriptStrategy]) -> None:
        self._strategies = list(strategies)

    @property
    def strategy_names(self) -> list[str]:
        return [s.name for s in self._strategies]

    async def fetch(self, subject_id: str, languages: list[str]) -> TranscriptResult:
        last: TranscriptResult | None = None

        for strategy in self._strategies:
            try:
                result = await strategy.fetch(subject_id, languages)
            except Exception:
                log.warning(
                    "transcript_strategy_failed",
                    source=strategy.name,
                    subject_id=subject_id,
                    exc_info=True,
                )
                result = TranscriptResult.empty(SourceReason.FETCH_ERROR, source=strategy.name)

            if not result.is_empty:
                return result
            if result.source_reason == SourceReason.OK:
                result = TranscriptResult.empty(SourceReason.NO_SUBTITLES, source=strategy.name)

            log.info(
                "transcript_strategy_empty",
                source=strategy.name,
                subject_id=subject_id,
                reason=result.source_reason,
            )
            last = result

        if last is None:
            return TranscriptResult.empty(SourceReason.NO_SUBTITLES_OR_PROTECTED)
        return last
