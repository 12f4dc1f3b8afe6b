"""Protocol interfaces for swappable components.

The orchestrator and AppState reference these protocols, not the concrete
implementations. This allows:
- Tests to use lightweight in-memory implementations
- Other backends (e.g. Redis for the durable tier) to be swapped in without
  touching the request flow
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from tubetldr.models.generation import GenerationResult
    from tubetldr.models.response import CachedResponse
    from tubetldr.models.telemetry import TelemetryEvent
    from tubetldr.models.transcript import TranscriptResult
    from tubetldr.youtube import VideoMetadata


class KeyValueStoreProtocol(Protocol):
    """Durable key-value backend (cache tier 2)."""

    async def get(self, key: str) -> bytes | None: ...

    async def put(self, key: str, value: bytes, ttl_seconds: int) -> None: ...


class CacheProtocol(Protocol):
    """Two-tier response cache. Implementations never raise."""

    async def get(self, key: str) -> CachedResponse | None: ...

    async def put(self, key: str, value: CachedResponse, ttl_seconds: int) -> None: ...


class MetadataProviderProtocol(Protocol):
    async def fetch_metadata(self, subject_id: str) -> VideoMetadata: ...


class TranscriptStrategy(Protocol):
    """One way of obtaining a transcript. May raise; the chain absorbs it."""

    name: str

    async def fetch(self, subject_id: str, languages: list[str]) -> TranscriptResult: ...


class TranscriptSourceProtocol(Protocol):
    async def fetch(self, subject_id: str, languages: list[str]) -> TranscriptResult: ...


class GeneratorProtocol(Protocol):
    async def generate(
        self, model_id: str, transcript_text: str, language: str
    ) -> GenerationResult: ...


class TelemetryBackend(Protocol):
    async def write_event(self, fields: dict[str, Any]) -> None: ...


class TelemetrySinkProtocol(Protocol):
    def record(self, event: TelemetryEvent) -> None: ...


class NotifierProtocol(Protocol):
    async def send_message(self, chat_id: int | str, text: str) -> None: ...
