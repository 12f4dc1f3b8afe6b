from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, model_validator


class SourceReason(StrEnum):
    OK = "ok"
    NO_SUBTITLES = "no_subtitles"
    FETCH_ERROR = "fetch_error"
    UNIMPLEMENTED_SOURCE = "unimplemented_source"
    NO_SUBTITLES_OR_PROTECTED = "no_subtitles_or_protected"


class TranscriptSegment(BaseModel):
    start: float  # Offset from the start of the video, seconds
    duration: float = 0.0
    text: str


class TranscriptResult(BaseModel):
    """Outcome of one transcript acquisition attempt.

    Empty ``segments`` is a valid terminal value; ``source_reason`` says why.
    """

    segments: list[TranscriptSegment] = []
    source_reason: SourceReason = SourceReason.OK
    source: str | None = None  # Strategy name that produced the result

    @model_validator(mode="after")
    def _check_ordering(self) -> TranscriptResult:
        for prev, cur in zip(self.segments, self.segments[1:]):
            if cur.start < prev.start:
                raise ValueError("Transcript segments must be ordered by start offset")
        return self

    @classmethod
    def empty(cls, reason: SourceReason, source: str | None = None) -> TranscriptResult:
        return cls(segments=[], source_reason=reason, source=source)

    @property
    def is_empty(self) -> bool:
        return not self.segments

    @property
    def text(self) -> str:
        """Plain transcript text, one segment per line."""
        return "\n".join(seg.text for seg in self.segments)
