from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, field_validator

# Upper bound regardless of configuration; keeps cached payloads small.
MAX_CHAPTERS_HARD_LIMIT = 20


class ParseOutcome(StrEnum):
    STRUCTURED = "structured"
    FALLBACK = "fallback"
    ERROR = "error"


class Chapter(BaseModel):
    time: str  # Label as produced by the model, e.g. "02:30"
    title: str


class GenerationResult(BaseModel):
    summary: str | None = None
    chapters: list[Chapter] = []
    parse_outcome: ParseOutcome
    error: str | None = None  # Set only when parse_outcome is ERROR

    @field_validator("chapters")
    @classmethod
    def _cap_chapters(cls, v: list[Chapter]) -> list[Chapter]:
        return v[:MAX_CHAPTERS_HARD_LIMIT]

    @classmethod
    def failed(cls, error: str) -> GenerationResult:
        return cls(summary=None, chapters=[], parse_outcome=ParseOutcome.ERROR, error=error)
