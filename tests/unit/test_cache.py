"""Unit tests for tubetldr.cache."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import aiosqlite
import pytest

from tubetldr.cache import MemoryTier, TieredCache
from tubetldr.models.cache import CacheEnvelope
from tubetldr.models.generation import Chapter
from tubetldr.models.response import CachedResponse

if TYPE_CHECKING:
    from tests.fakes import InMemoryStore
    from tubetldr.cache import SqliteStore


def _response(summary: str = "A short summary.") -> CachedResponse:
    return CachedResponse(
        subject_id="dQw4w9WgXcQ",
        title="Title",
        summary=summary,
        chapters=[Chapter(time="00:00", title="intro")],
        model_id="m1",
        processed_at=datetime(2026, 1, 1, tzinfo=UTC),
        response_time_ms=12.5,
    )


# ---------------------------------------------------------------------------
# Durable tier
# ---------------------------------------------------------------------------


class TestSqliteStore:
    async def test_put_and_get(self, store: SqliteStore) -> None:
        await store.put("k", b"value", ttl_seconds=60)
        assert await store.get("k") == b"value"

    async def test_get_nonexistent_returns_none(self, store: SqliteStore) -> None:
        assert await store.get("missing") is None

    async def test_upsert_overwrites(self, store: SqliteStore) -> None:
        await store.put("k", b"v1", ttl_seconds=60)
        await store.put("k", b"v2", ttl_seconds=60)
        assert await store.get("k") == b"v2"

    async def test_expired_entry_reads_as_absent(self, store: SqliteStore) -> None:
        await store.put("k", b"value", ttl_seconds=60)
        past = (datetime.now(UTC) - timedelta(seconds=1)).isoformat()
        await store._db.execute("UPDATE kv_cache SET expires_at = ? WHERE key = ?", (past, "k"))
        await store._db.commit()

        assert await store.get("k") is None

    async def test_zero_ttl_expires_immediately(self, store: SqliteStore) -> None:
        await store.put("k", b"value", ttl_seconds=0)
        assert await store.get("k") is None

    async def test_cleanup_expired_deletes_rows(self, store: SqliteStore) -> None:
        await store.put("old", b"x", ttl_seconds=60)
        await store.put("fresh", b"y", ttl_seconds=60)
        past = (datetime.now(UTC) - timedelta(hours=1)).isoformat()
        await store._db.execute("UPDATE kv_cache SET expires_at = ? WHERE key = 'old'", (past,))
        await store._db.commit()

        await store.cleanup_expired()

        cursor = await store._db.execute("SELECT key FROM kv_cache")
        assert [row[0] for row in await cursor.fetchall()] == ["fresh"]

    async def test_cleanup_if_due_records_last_run(self, store: SqliteStore) -> None:
        await store.cleanup_if_due(interval_hours=6)
        cursor = await store._db.execute(
            "SELECT value FROM server_metadata WHERE key = 'last_cleanup_at'"
        )
        assert await cursor.fetchone() is not None

    async def test_cleanup_if_due_skips_when_recent(self, store: SqliteStore) -> None:
        await store.cleanup_if_due(interval_hours=6)
        await store.put("old", b"x", ttl_seconds=60)
        past = (datetime.now(UTC) - timedelta(hours=1)).isoformat()
        await store._db.execute("UPDATE kv_cache SET expires_at = ? WHERE key = 'old'", (past,))
        await store._db.commit()

        await store.cleanup_if_due(interval_hours=6)

        cursor = await store._db.execute("SELECT COUNT(*) FROM kv_cache")
        assert (await cursor.fetchone())[0] == 1

    async def test_read_failure_propagates(self, store: SqliteStore) -> None:
        """The store itself does not swallow errors; TieredCache does."""

        async def failing_execute(*args, **kwargs):
            raise aiosqlite.OperationalError("disk I/O error")

        store._db.execute = failing_execute  # type: ignore[assignment]
        with pytest.raises(aiosqlite.OperationalError):
            await store.get("k")


# ---------------------------------------------------------------------------
# Memory tier
# ---------------------------------------------------------------------------


class TestMemoryTier:
    def test_put_and_get(self) -> None:
        tier = MemoryTier(max_entries=4, ttl_seconds=60)
        value = _response()
        tier.put("k", value, ttl_seconds=60)
        assert tier.get("k") == value

    def test_expired_entry_is_evicted(self) -> None:
        tier = MemoryTier(max_entries=4, ttl_seconds=60)
        tier.put("k", _response(), ttl_seconds=0)
        assert tier.get("k") is None
        assert len(tier) == 0

    def test_tier_ttl_bounds_entry_ttl(self) -> None:
        tier = MemoryTier(max_entries=4, ttl_seconds=0)
        tier.put("k", _response(), ttl_seconds=3600)
        assert tier.get("k") is None

    def test_lru_eviction(self) -> None:
        tier = MemoryTier(max_entries=2, ttl_seconds=60)
        tier.put("a", _response("a"), ttl_seconds=60)
        tier.put("b", _response("b"), ttl_seconds=60)
        assert tier.get("a") is not None  # "a" becomes most recently used
        tier.put("c", _response("c"), ttl_seconds=60)

        assert tier.get("b") is None
        assert tier.get("a") is not None
        assert tier.get("c") is not None

    def test_disabled_when_max_entries_zero(self) -> None:
        tier = MemoryTier(max_entries=0, ttl_seconds=60)
        tier.put("k", _response(), ttl_seconds=60)
        assert tier.get("k") is None


# ---------------------------------------------------------------------------
# Tiered cache
# ---------------------------------------------------------------------------


class TestTieredCache:
    async def test_put_then_get_returns_equal_value(self, tiered_cache: TieredCache) -> None:
        value = _response()
        await tiered_cache.put("k", value, ttl_seconds=60)
        assert await tiered_cache.get("k") == value

    async def test_get_never_populated_returns_none(self, tiered_cache: TieredCache) -> None:
        assert await tiered_cache.get("missing") is None

    async def test_put_writes_durable_tier(
        self, tiered_cache: TieredCache, memory_store: InMemoryStore
    ) -> None:
        await tiered_cache.put("k", _response(), ttl_seconds=60)
        envelope = CacheEnvelope.model_validate_json(memory_store.data["k"])
        assert envelope.value == _response()
        assert envelope.expires_at > datetime.now(UTC)

    async def test_durable_hit_when_memory_tier_cold(self, memory_store: InMemoryStore) -> None:
        writer = TieredCache(MemoryTier(max_entries=8, ttl_seconds=60), memory_store)
        await writer.put("k", _response(), ttl_seconds=60)

        # A fresh process: empty tier 1, same durable tier.
        reader = TieredCache(MemoryTier(max_entries=8, ttl_seconds=60), memory_store)
        assert await reader.get("k") == _response()

    async def test_durable_hit_repopulates_memory_tier(self, memory_store: InMemoryStore) -> None:
        writer = TieredCache(MemoryTier(max_entries=8, ttl_seconds=60), memory_store)
        await writer.put("k", _response(), ttl_seconds=60)
        memory = MemoryTier(max_entries=8, ttl_seconds=60)
        reader = TieredCache(memory, memory_store)

        await reader.get("k")

        assert memory.get("k") == _response()

    async def test_envelope_expiry_enforced_even_if_backend_keeps_value(
        self, tiered_cache: TieredCache, memory_store: InMemoryStore
    ) -> None:
        envelope = CacheEnvelope(
            expires_at=datetime.now(UTC) - timedelta(seconds=1), value=_response()
        )
        memory_store.data["k"] = envelope.model_dump_json().encode("utf-8")
        assert await tiered_cache.get("k") is None

    async def test_expired_entry_reads_as_miss(self, store: SqliteStore) -> None:
        cache = TieredCache(MemoryTier(max_entries=0, ttl_seconds=60), store)
        await cache.put("k", _response(), ttl_seconds=60)
        past = (datetime.now(UTC) - timedelta(seconds=1)).isoformat()
        await store._db.execute("UPDATE kv_cache SET expires_at = ? WHERE key = ?", (past, "k"))
        await store._db.commit()

        assert await cache.get("k") is None

    async def test_zero_ttl_reads_as_miss(self, store: SqliteStore) -> None:
        cache = TieredCache(MemoryTier(max_entries=8, ttl_seconds=60), store)
        await cache.put("k", _response(), ttl_seconds=0)
        assert await cache.get("k") is None

    async def test_undecodable_payload_is_a_miss(
        self, tiered_cache: TieredCache, memory_store: InMemoryStore
    ) -> None:
        memory_store.data["k"] = b"not json"
        assert await tiered_cache.get("k") is None

    async def test_read_failure_returns_none(
        self, tiered_cache: TieredCache, memory_store: InMemoryStore
    ) -> None:
        memory_store.fail_reads = True
        assert await tiered_cache.get("k") is None

    async def test_write_failure_does_not_raise(
        self, tiered_cache: TieredCache, memory_store: InMemoryStore
    ) -> None:
        memory_store.fail_writes = True
        await tiered_cache.put("k", _response(), ttl_seconds=60)
        memory_store.fail_writes = False
        # Tier 1 is only written after a durable write succeeds.
        assert await tiered_cache.get("k") is None

    async def test_sqlite_failure_degrades_to_miss(self, store: SqliteStore) -> None:
        cache = TieredCache(MemoryTier(max_entries=0, ttl_seconds=60), store)

        async def failing_execute(*args, **kwargs):
            raise aiosqlite.OperationalError("disk I/O error")

        store._db.execute = failing_execute  # type: ignore[assignment]
        await cache.put("k", _response(), ttl_seconds=60)
        assert await cache.get("k") is None
