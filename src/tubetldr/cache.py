"""Two-tier response cache.

Tier 1 is a small in-process LRU with per-entry expiry. Tier 2 is a durable
SQLite key-value table. Tier 1 is a pure latency optimisation: every value it
holds was written to tier 2 first, and losing it only costs a tier-2 read.

All cache operations catch backend errors internally and degrade gracefully:
read failures return ``None`` (treated as cache miss by callers), write
failures are logged and ignored (the generated response is still returned).
Infrastructure errors never cross the TieredCache class boundary, and there is
no retry loop here.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import aiosqlite
import structlog
from pydantic import ValidationError

from tubetldr.models.cache import CacheEnvelope

if TYPE_CHECKING:
    from tubetldr.models.response import CachedResponse
    from tubetldr.protocols import KeyValueStoreProtocol

log = structlog.get_logger()

_CREATE_KV_TABLE = """
CREATE TABLE IF NOT EXISTS kv_cache (
    key        TEXT PRIMARY KEY,
    value      BLOB NOT NULL,
    stored_at  TEXT NOT NULL,
    expires_at TEXT NOT NULL
)
"""

_CREATE_KV_INDEX = "CREATE INDEX IF NOT EXISTS idx_kv_expires ON kv_cache(expires_at)"

_CREATE_METADATA_TABLE = """
CREATE TABLE IF NOT EXISTS server_metadata (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""


class SqliteStore:
    """Durable key-value tier implementing KeyValueStoreProtocol.

    Errors propagate as ``aiosqlite.Error``; TieredCache owns the policy for
    absorbing them. Maintenance methods are non-fatal on their own.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_KV_TABLE)
        await self._db.execute(_CREATE_KV_INDEX)
        await self._db.execute(_CREATE_METADATA_TABLE)
        await self._db.commit()

    async def get(self, key: str) -> bytes | None:
        cursor = await self._db.execute(
            "SELECT value, expires_at FROM kv_cache WHERE key = ?",
            (key,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        if datetime.now(UTC) >= datetime.fromisoformat(row[1]):
            # Expired rows read exactly like a cold miss; cleanup removes them later.
            return None
        return bytes(row[0])

    async def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
        now = datetime.now(UTC)
        expires_at = now + timedelta(seconds=ttl_seconds)
        await self._db.execute(
            "INSERT OR REPLACE INTO kv_cache (key, value, stored_at, expires_at) "
            "VALUES (?, ?, ?, ?)",
            (key, value, now.isoformat(), expires_at.isoformat()),
        )
        await self._db.commit()

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def cleanup_if_due(self, interval_hours: int) -> None:
        """Run cleanup only if interval_hours have elapsed since the last run.

        Reads and writes ``last_cleanup_at`` from the ``server_metadata`` table.
        Falls through to run cleanup if the metadata row is missing or unreadable.
        Non-fatal on failure.
        """
        try:
            cursor = await self._db.execute(
                "SELECT value FROM server_metadata WHERE key = 'last_cleanup_at'"
            )
            row = await cursor.fetchone()
            if row is not None:
                last_run = datetime.fromisoformat(row[0])
                if datetime.now(UTC) - last_run < timedelta(hours=interval_hours):
                    log.debug("cache_cleanup_skipped", reason="not_due")
                    return
        except aiosqlite.Error:
            log.warning("cache_metadata_read_error", exc_info=True)

        await self.cleanup_expired()

        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO server_metadata (key, value) VALUES ('last_cleanup_at', ?)",
                (datetime.now(UTC).isoformat(),),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_metadata_write_error", exc_info=True)

    async def cleanup_expired(self) -> None:
        """Delete expired entries. Non-fatal on failure."""
        try:
            cutoff = datetime.now(UTC).isoformat()
            cursor = await self._db.execute("DELETE FROM kv_cache WHERE expires_at < ?", (cutoff,))
            deleted = cursor.rowcount
            await self._db.commit()
            log.info("cache_cleanup_complete", deleted=deleted)
        except aiosqlite.Error:
            log.warning("cache_cleanup_error", exc_info=True)


class MemoryTier:
    """Process-local LRU with per-entry expiry (cache tier 1)."""

    def __init__(self, max_entries: int, ttl_seconds: int) -> None:
        self._max_entries = max_entries
        self._ttl_seconds = ttl_seconds
        self._entries: OrderedDict[str, tuple[float, CachedResponse]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> CachedResponse | None:
        item = self._entries.get(key)
        if item is None:
            return None
        expires_at, value = item
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def put(self, key: str, value: CachedResponse, ttl_seconds: int) -> None:
        if self._max_entries <= 0:
            return
        # Bounded by both the entry TTL and this tier's own TTL.
        ttl = min(ttl_seconds, self._ttl_seconds)
        self._entries[key] = (time.monotonic() + ttl, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)


class TieredCache:
    """Read-through / write-through cache implementing CacheProtocol."""

    def __init__(self, memory: MemoryTier, store: KeyValueStoreProtocol) -> None:
        self._memory = memory
        self._store = store

    async def get(self, key: str) -> CachedResponse | None:
        """Return the cached response, or ``None`` on miss, expiry or read failure."""
        value = self._memory.get(key)
        if value is not None:
            log.debug("cache_tier_hit", tier="memory", key=key)
            return value

        try:
            raw = await self._store.get(key)
        except Exception:
            log.warning("cache_read_error", key=key, exc_info=True)
            return None
        if raw is None:
            return None

        try:
            envelope = CacheEnvelope.model_validate_json(raw)
        except ValidationError:
            log.warning("cache_decode_error", key=key, exc_info=True)
            return None

        remaining = (envelope.expires_at - datetime.now(UTC)).total_seconds()
        if remaining <= 0:
            return None

        log.debug("cache_tier_hit", tier="durable", key=key)
        self._memory.put(key, envelope.value, int(remaining))
        return envelope.value

    async def put(self, key: str, value: CachedResponse, ttl_seconds: int) -> None:
        """Write to the durable tier, then tier 1. Non-fatal on failure."""
        envelope = CacheEnvelope(
            expires_at=datetime.now(UTC) + timedelta(seconds=ttl_seconds),
            value=value,
        )
        try:
            await self._store.put(key, envelope.model_dump_json().encode("utf-8"), ttl_seconds)
        except Exception:
            log.warning("cache_write_error", key=key, exc_info=True)
            return
        self._memory.put(key, value, ttl_seconds)
