from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class TelemetryStatus(StrEnum):
    OK = "ok"
    FAIL = "fail"
    NO_SUBS = "no_subs"


class CacheStatus(StrEnum):
    HIT = "hit"
    MISS = "miss"


class TelemetryEvent(BaseModel):
    """Outcome record for one request. Write-only from the service's view."""

    subject_id: str
    status: TelemetryStatus
    language: str
    model_id: str
    cache_status: CacheStatus = CacheStatus.MISS
    duration_ms: float = 0.0
    transcript_length: int = 0
    response_length: int = 0
    failure_reason: str | None = None
