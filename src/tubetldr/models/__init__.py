from __future__ import annotations

from tubetldr.models.cache import CacheEnvelope
from tubetldr.models.generation import (
    MAX_CHAPTERS_HARD_LIMIT,
    Chapter,
    GenerationResult,
    ParseOutcome,
)
from tubetldr.models.response import (
    FALLBACK_MODEL_ID,
    PLACEHOLDER_SUMMARY,
    CachedResponse,
    ResponseReason,
)
from tubetldr.models.telemetry import CacheStatus, TelemetryEvent, TelemetryStatus
from tubetldr.models.transcript import SourceReason, TranscriptResult, TranscriptSegment

__all__ = [
    # transcript
    "SourceReason",
    "TranscriptSegment",
    "TranscriptResult",
    # generation
    "Chapter",
    "GenerationResult",
    "ParseOutcome",
    "MAX_CHAPTERS_HARD_LIMIT",
    # cache
    "CacheEnvelope",
    # response
    "CachedResponse",
    "ResponseReason",
    "PLACEHOLDER_SUMMARY",
    "FALLBACK_MODEL_ID",
    # telemetry
    "TelemetryEvent",
    "TelemetryStatus",
    "CacheStatus",
]
