"""Integration test fixtures.

Provides an AppState wired around a real in-memory SQLite store and the real
tiered cache, with fake transcript, generation and Telegram collaborators,
plus an httpx client bound to the ASGI app.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from tests.fakes import (
    WEBHOOK_SECRET,
    FakeGenerator,
    FakeMetadataProvider,
    RecordingNotifier,
    StaticStrategy,
    structured_result,
    transcript_of,
)
from tubetldr.cache import MemoryTier, TieredCache
from tubetldr.config import Settings
from tubetldr.orchestrator import Orchestrator
from tubetldr.server import create_app
from tubetldr.sources import FallbackSourceChain
from tubetldr.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from tubetldr.cache import SqliteStore
    from tubetldr.telemetry import TelemetrySink


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        telegram={"bot_token": "123:abc", "webhook_secret": WEBHOOK_SECRET},
        generation={"default_model": "gemma3:1b"},
    )


@pytest.fixture()
def strategy() -> StaticStrategy:
    return StaticStrategy(
        "static", transcript_of("welcome to the show", "today we talk about caching")
    )


@pytest.fixture()
def generator() -> FakeGenerator:
    return FakeGenerator(
        structured_result("A talk about caching.", [("00:00", "Welcome"), ("00:10", "Caching")])
    )


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def app_state(
    settings: Settings,
    store: SqliteStore,
    telemetry: TelemetrySink,
    strategy: StaticStrategy,
    generator: FakeGenerator,
    notifier: RecordingNotifier,
) -> AppState:
    """AppState over the real durable store with fake upstreams."""
    orchestrator = Orchestrator(
        metadata=FakeMetadataProvider(title="Caching 101"),
        transcripts=FallbackSourceChain([strategy]),
        generator=generator,
        cache=TieredCache(MemoryTier(max_entries=64, ttl_seconds=300), store),
        telemetry=telemetry,
        cache_ttl_seconds=settings.cache.ttl_seconds,
        fallback_languages=settings.youtube.fallback_languages,
    )
    return AppState(
        settings=settings,
        orchestrator=orchestrator,
        telemetry=telemetry,
        store=store,
        notifier=notifier,
    )


@pytest.fixture()
async def client(app_state: AppState) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client bound to the ASGI app. The lifespan is skipped; state is preset."""
    transport = httpx.ASGITransport(app=create_app(state=app_state))
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
