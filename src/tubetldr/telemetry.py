"""Best-effort outcome telemetry.

``TelemetrySink.record`` never blocks and never raises: the write runs on a
detached asyncio task, outside the request's cancellation scope, and any
backend failure is logged and dropped.
"""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    import aiosqlite

    from tubetldr.models.telemetry import TelemetryEvent
    from tubetldr.protocols import TelemetryBackend

log = structlog.get_logger()

_CREATE_EVENTS_TABLE = """
CREATE TABLE IF NOT EXISTS telemetry_events (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    recorded_at TEXT NOT NULL,
    subject_id  TEXT NOT NULL,
    status      TEXT NOT NULL,
    fields      TEXT NOT NULL
)
"""


class LogTelemetryBackend:
    """Emits each event as a structured log line."""

    async def write_event(self, fields: dict[str, Any]) -> None:
        log.info("telemetry_event", **fields)


class NullTelemetryBackend:
    async def write_event(self, fields: dict[str, Any]) -> None:
        return None


class SqliteTelemetryBackend:
    """Appends events to a ``telemetry_events`` table."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        await self._db.execute(_CREATE_EVENTS_TABLE)
        await self._db.commit()

    async def write_event(self, fields: dict[str, Any]) -> None:
        await self._db.execute(
            "INSERT INTO telemetry_events (recorded_at, subject_id, status, fields) "
            "VALUES (?, ?, ?, ?)",
            (
                datetime.now(UTC).isoformat(),
                fields["subject_id"],
                fields["status"],
                json.dumps(fields),
            ),
        )
        await self._db.commit()


class TelemetrySink:
    """Fire-and-forget front for a TelemetryBackend."""

    def __init__(self, backend: TelemetryBackend) -> None:
        self._backend = backend
        # Strong references: the event loop only keeps weak ones to tasks.
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def record(self, event: TelemetryEvent) -> None:
        """Schedule the write and return immediately."""
        try:
            task = asyncio.get_running_loop().create_task(self._write(event))
        except RuntimeError:
            log.warning("telemetry_no_event_loop", subject_id=event.subject_id)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, event: TelemetryEvent) -> None:
        try:
            await self._backend.write_event(event.model_dump(mode="json"))
        except Exception:
            log.warning("telemetry_write_error", subject_id=event.subject_id, exc_info=True)

    async def drain(self) -> None:
        """Wait for in-flight writes. Used at shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
