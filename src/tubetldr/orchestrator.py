"""End-to-end request flow for one summary request.

    metadata -> transcript chain -> (empty: placeholder, cache, telemetry)
             -> key from transcript -> cache lookup -> (hit: return)
             -> generate once -> cache -> telemetry -> return

Every collaborator owns its failure policy (metadata and the chain never
raise, the invoker returns an error result, cache and telemetry swallow and
log), so nothing here catches exceptions. Anything that does escape is a
programming fault and surfaces as a server error at the HTTP layer.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from tubetldr.fingerprint import compute_key
from tubetldr.generation import format_transcript
from tubetldr.models.response import (
    FALLBACK_MODEL_ID,
    PLACEHOLDER_SUMMARY,
    CachedResponse,
    ResponseReason,
)
from tubetldr.models.telemetry import CacheStatus, TelemetryEvent, TelemetryStatus
from tubetldr.sources import preferred_languages

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tubetldr.models.transcript import TranscriptResult
    from tubetldr.protocols import (
        CacheProtocol,
        GeneratorProtocol,
        MetadataProviderProtocol,
        TelemetrySinkProtocol,
        TranscriptSourceProtocol,
    )


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)


class Orchestrator:
    def __init__(
        self,
        *,
        metadata: MetadataProviderProtocol,
        transcripts: TranscriptSourceProtocol,
        generator: GeneratorProtocol,
        cache: CacheProtocol,
        telemetry: TelemetrySinkProtocol,
        cache_ttl_seconds: int,
        fallback_languages: Sequence[str] = (),
        single_flight: bool = True,
    ) -> None:
        self._metadata = metadata
        self._transcripts = transcripts
        self._generator = generator
        self._cache = cache
        self._telemetry = telemetry
        self._cache_ttl_seconds = cache_ttl_seconds
        self._fallback_languages = list(fallback_languages)
        self._single_flight = single_flight
        # Per-process de-duplication of concurrent misses; not shared across replicas.
        self._inflight: dict[str, asyncio.Task[CachedResponse]] = {}
        self.stats: Counter[str] = Counter()

    async def summarize(self, subject_id: str, language: str, model_id: str) -> CachedResponse:
        started = time.perf_counter()
        log = structlog.get_logger().bind(subject_id=subject_id, language=language, model=model_id)

        metadata = await self._metadata.fetch_metadata(subject_id)

        languages = preferred_languages(language, self._fallback_languages)
        transcript = await self._transcripts.fetch(subject_id, languages)
        transcript_text = transcript.text
        key = compute_key(subject_id, language, model_id, transcript_text)

        if transcript.is_empty:
            log.info("transcript_unavailable", reason=transcript.source_reason)
            self.stats["no_transcript"] += 1
            return await self._no_transcript(
                key, subject_id, language, model_id, metadata.title, transcript, started
            )

        cached = await self._cache.get(key)
        if cached is not None:
            log.debug("cache_hit")
            self.stats["hit"] += 1
            return cached.as_cached()

        self.stats["miss"] += 1
        if not self._single_flight:
            return await self._generate_and_store(
                key, subject_id, language, model_id, metadata.title, transcript, started
            )

        task = self._inflight.get(key)
        if task is not None:
            log.info("generation_joined_inflight")
            return await asyncio.shield(task)

        log.info("cache_miss_generating", transcript_length=len(transcript_text))
        task = asyncio.create_task(
            self._generate_and_store(
                key, subject_id, language, model_id, metadata.title, transcript, started
            )
        )
        self._inflight[key] = task
        task.add_done_callback(lambda _: self._inflight.pop(key, None))
        # Shielded so a disconnecting client does not cancel work others await.
        return await asyncio.shield(task)

    async def _no_transcript(
        self,
        key: str,
        subject_id: str,
        language: str,
        model_id: str,
        title: str | None,
        transcript: TranscriptResult,
        started: float,
    ) -> CachedResponse:
        reason = ResponseReason(transcript.source_reason.value)
        response = CachedResponse(
            subject_id=subject_id,
            title=title,
            summary=PLACEHOLDER_SUMMARY,
            chapters=[],
            model_id=FALLBACK_MODEL_ID,
            cached=False,
            reason=reason,
            processed_at=datetime.now(UTC),
            response_time_ms=_elapsed_ms(started),
        )
        await self._cache.put(key, response, self._cache_ttl_seconds)
        self._telemetry.record(
            TelemetryEvent(
                subject_id=subject_id,
                status=TelemetryStatus.NO_SUBS,
                language=language,
                model_id=model_id,
                cache_status=CacheStatus.MISS,
                duration_ms=response.response_time_ms or 0.0,
                failure_reason=reason.value,
            )
        )
        return response

    async def _generate_and_store(
        self,
        key: str,
        subject_id: str,
        language: str,
        model_id: str,
        title: str | None,
        transcript: TranscriptResult,
        started: float,
    ) -> CachedResponse:
        transcript_text = transcript.text
        generation = await self._generator.generate(
            model_id, format_transcript(transcript.segments), language
        )
        ok = bool(generation.summary)

        response = CachedResponse(
            subject_id=subject_id,
            title=title,
            summary=generation.summary if ok else PLACEHOLDER_SUMMARY,
            chapters=generation.chapters,
            model_id=model_id,
            cached=False,
            reason=None if ok else ResponseReason.GENERATION_FAILED,
            processed_at=datetime.now(UTC),
            response_time_ms=_elapsed_ms(started),
            transcript_length=len(transcript_text),
        )
        await self._cache.put(key, response, self._cache_ttl_seconds)

        self._telemetry.record(
            TelemetryEvent(
                subject_id=subject_id,
                status=TelemetryStatus.OK if ok else TelemetryStatus.FAIL,
                language=language,
                model_id=model_id,
                cache_status=CacheStatus.MISS,
                duration_ms=response.response_time_ms or 0.0,
                transcript_length=len(transcript_text),
                response_length=len(generation.summary or ""),
                failure_reason=None if ok else (generation.error or generation.parse_outcome.value),
            )
        )
        return response
