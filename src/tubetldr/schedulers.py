"""Background scheduler coroutine for durable cache cleanup."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from tubetldr.state import AppState

log = structlog.get_logger()


async def run_cache_cleanup_scheduler(state: AppState) -> None:
    """Run cache cleanup at startup, then on the configured interval."""
    interval_hours = state.settings.cache.cleanup_interval_hours

    # At startup, skipping if it ran recently (e.g. another replica or a restart).
    if state.store is not None:
        await state.store.cleanup_if_due(interval_hours)

    while True:
        await asyncio.sleep(interval_hours * 3600)
        if state.store is not None:
            await state.store.cleanup_if_due(interval_hours)
