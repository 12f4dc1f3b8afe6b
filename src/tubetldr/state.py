"""Application state container.

AppState is created once at server startup (inside the Starlette lifespan)
and handed to every request handler via ``request.app.state``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from tubetldr.cache import SqliteStore
    from tubetldr.config import Settings
    from tubetldr.orchestrator import Orchestrator
    from tubetldr.protocols import NotifierProtocol
    from tubetldr.telemetry import TelemetrySink


@dataclass
class AppState:
    """Holds all shared runtime state."""

    settings: Settings
    orchestrator: Orchestrator
    telemetry: TelemetrySink
    http_client: httpx.AsyncClient | None = None
    store: SqliteStore | None = None
    notifier: NotifierProtocol | None = None
