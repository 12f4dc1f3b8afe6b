from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from tubetldr.models.generation import Chapter

PLACEHOLDER_SUMMARY = "Unable to generate a summary for this video."
FALLBACK_MODEL_ID = "fallback"


class ResponseReason(StrEnum):
    """Why a response is degraded. ``None`` on a full success."""

    NO_SUBTITLES = "no_subtitles"
    FETCH_ERROR = "fetch_error"
    UNIMPLEMENTED_SOURCE = "unimplemented_source"
    NO_SUBTITLES_OR_PROTECTED = "no_subtitles_or_protected"
    GENERATION_FAILED = "generation_failed"


class CachedResponse(BaseModel):
    """The unit of caching. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    title: str | None = None
    summary: str
    chapters: list[Chapter] = []
    model_id: str
    cached: bool = False
    reason: ResponseReason | None = None
    processed_at: datetime
    response_time_ms: float | None = None
    transcript_length: int = 0

    def as_cached(self) -> CachedResponse:
        return self.model_copy(update={"cached": True})

    def to_wire(self) -> dict:
        """Public JSON shape returned by the HTTP surface."""
        return {
            "success": True,
            "subjectId": self.subject_id,
            "title": self.title,
            "summary": self.summary,
            "chapters": [c.model_dump(mode="json") for c in self.chapters],
            "model": self.model_id,
            "processedAt": self.processed_at.isoformat(),
            "responseTimeMs": self.response_time_ms,
            "cached": self.cached,
            "reason": self.reason.value if self.reason is not None else None,
            "transcriptLength": self.transcript_length,
        }
