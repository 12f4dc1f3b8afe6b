"""Shared test fixtures for the tubetldr test suite."""

from __future__ import annotations

import aiosqlite
import pytest

from tests.fakes import (
    FakeGenerator,
    FakeMetadataProvider,
    InMemoryStore,
    RecordingTelemetryBackend,
    StaticStrategy,
    structured_result,
    transcript_of,
)
from tubetldr.cache import MemoryTier, SqliteStore, TieredCache
from tubetldr.orchestrator import Orchestrator
from tubetldr.sources import FallbackSourceChain
from tubetldr.telemetry import TelemetrySink

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
async def store() -> SqliteStore:
    """SqliteStore over an in-memory database."""
    async with aiosqlite.connect(":memory:") as db:
        sqlite_store = SqliteStore(db)
        await sqlite_store.init_db()
        yield sqlite_store


@pytest.fixture()
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def tiered_cache(memory_store: InMemoryStore) -> TieredCache:
    return TieredCache(MemoryTier(max_entries=64, ttl_seconds=300), memory_store)


@pytest.fixture()
def telemetry_backend() -> RecordingTelemetryBackend:
    return RecordingTelemetryBackend()


@pytest.fixture()
def telemetry(telemetry_backend: RecordingTelemetryBackend) -> TelemetrySink:
    return TelemetrySink(telemetry_backend)


@pytest.fixture()
def make_orchestrator(tiered_cache: TieredCache, telemetry: TelemetrySink):
    """Factory: Orchestrator over fakes, sharing the tiered_cache and telemetry fixtures."""

    def _make(
        *,
        strategies: list[StaticStrategy] | None = None,
        generator: FakeGenerator | None = None,
        metadata: FakeMetadataProvider | None = None,
        single_flight: bool = True,
    ) -> Orchestrator:
        return Orchestrator(
            metadata=metadata or FakeMetadataProvider(),
            transcripts=FallbackSourceChain(
                strategies
                if strategies is not None
                else [StaticStrategy("static", transcript_of("hello world"))]
            ),
            generator=generator or FakeGenerator(structured_result()),
            cache=tiered_cache,
            telemetry=telemetry,
            cache_ttl_seconds=3600,
            fallback_languages=["en"],
            single_flight=single_flight,
        )

    return _make
