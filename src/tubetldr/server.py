"""HTTP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the Starlette lifespan context manager
- Register routes and translate handler results/errors into HTTP responses
- Start uvicorn
"""

from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog
import uvicorn
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route

import tubetldr.handlers.build as h_build
import tubetldr.handlers.telegram_webhook as h_telegram
from tubetldr import __version__
from tubetldr.cache import MemoryTier, SqliteStore, TieredCache
from tubetldr.config import Settings
from tubetldr.errors import ErrorCode, TubeTldrError
from tubetldr.generation import GenerationInvoker
from tubetldr.notifier import TelegramNotifier
from tubetldr.orchestrator import Orchestrator
from tubetldr.schedulers import run_cache_cleanup_scheduler
from tubetldr.sources import FallbackSourceChain
from tubetldr.state import AppState
from tubetldr.telemetry import (
    LogTelemetryBackend,
    NullTelemetryBackend,
    SqliteTelemetryBackend,
    TelemetrySink,
)
from tubetldr.youtube import (
    DataApiStrategy,
    OEmbedMetadataProvider,
    TimedTextStrategy,
    build_http_client,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import httpx
    from starlette.requests import Request

    from tubetldr.protocols import TelemetryBackend

log = structlog.get_logger()

_STATUS_BY_CODE = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.NOT_CONFIGURED: 404,
    ErrorCode.INTERNAL_ERROR: 500,
}


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_state(
    settings: Settings,
    *,
    http_client: httpx.AsyncClient,
    store: SqliteStore,
    telemetry_backend: TelemetryBackend,
) -> AppState:
    """Assemble all components around an open HTTP client and durable store."""
    cache = TieredCache(
        MemoryTier(settings.cache.memory_max_entries, settings.cache.memory_ttl_seconds),
        store,
    )
    chain = FallbackSourceChain(
        [
            TimedTextStrategy(http_client, settings.youtube.timeout_seconds),
            DataApiStrategy.from_settings(http_client, settings.youtube),
        ]
    )
    telemetry = TelemetrySink(telemetry_backend)
    orchestrator = Orchestrator(
        metadata=OEmbedMetadataProvider(http_client, settings.youtube.timeout_seconds),
        transcripts=chain,
        generator=GenerationInvoker(http_client, settings.generation),
        cache=cache,
        telemetry=telemetry,
        cache_ttl_seconds=settings.cache.ttl_seconds,
        fallback_languages=settings.youtube.fallback_languages,
        single_flight=settings.orchestrator.single_flight,
    )
    notifier = TelegramNotifier(http_client, settings.telegram)

    return AppState(
        settings=settings,
        orchestrator=orchestrator,
        telemetry=telemetry,
        http_client=http_client,
        store=store,
        notifier=notifier if notifier.enabled else None,
    )


async def _telemetry_backend(settings: Settings, db: aiosqlite.Connection) -> TelemetryBackend:
    if settings.telemetry.backend == "sqlite":
        backend = SqliteTelemetryBackend(db)
        await backend.init_db()
        return backend
    if settings.telemetry.backend == "none":
        return NullTelemetryBackend()
    return LogTelemetryBackend()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(app: Starlette) -> AsyncGenerator[None, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    preset: AppState | None = getattr(app.state, "tubetldr", None)
    if preset is not None:
        # Pre-built state (tests): the caller owns its resources.
        yield
        return

    settings: Settings = app.state.settings
    log.info("server_starting", version=__version__)

    http_client = build_http_client()
    db_path = Path(settings.cache.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(db_path))
    store = SqliteStore(db)
    await store.init_db()

    state = build_state(
        settings,
        http_client=http_client,
        store=store,
        telemetry_backend=await _telemetry_backend(settings, db),
    )
    app.state.tubetldr = state
    cache_cleanup_task = asyncio.create_task(run_cache_cleanup_scheduler(state))

    log.info(
        "server_started",
        version=__version__,
        telemetry_backend=settings.telemetry.backend,
        telegram_enabled=state.notifier is not None,
    )

    try:
        yield
    finally:
        cache_cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await cache_cleanup_task
        await state.telemetry.drain()
        await http_client.aclose()
        await db.close()
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _error_response(error: TubeTldrError) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=_STATUS_BY_CODE.get(error.code, 500))


def _internal_error() -> JSONResponse:
    return _error_response(
        TubeTldrError(
            code=ErrorCode.INTERNAL_ERROR,
            message="Internal server error.",
            suggestion="Try again later.",
            recoverable=True,
        )
    )


async def build_endpoint(request: Request) -> JSONResponse:
    state: AppState = request.app.state.tubetldr
    params = request.query_params
    try:
        data = await h_build.handle(
            params.get("url") or params.get("videoId"),
            params.get("lang"),
            params.get("model"),
            state,
        )
    except TubeTldrError as exc:
        log.warning("request_error", route="build", code=exc.code, message=exc.message)
        return _error_response(exc)
    except Exception:
        log.error("request_unexpected_error", route="build", exc_info=True)
        return _internal_error()

    return JSONResponse(
        data,
        headers={"Cache-Control": f"public, max-age={state.settings.cache.ttl_seconds}"},
    )


async def telegram_webhook_endpoint(request: Request) -> JSONResponse:
    state: AppState = request.app.state.tubetldr
    try:
        update = await request.json()
    except ValueError:
        return _error_response(
            TubeTldrError(
                code=ErrorCode.INVALID_INPUT,
                message="Request body is not valid JSON.",
                suggestion="Send Telegram Update objects as JSON.",
            )
        )
    try:
        follow_up = h_telegram.handle(
            update if isinstance(update, dict) else {},
            request.headers.get("x-telegram-bot-api-secret-token"),
            state,
        )
    except TubeTldrError as exc:
        log.warning("request_error", route="telegram_webhook", code=exc.code, message=exc.message)
        return _error_response(exc)
    except Exception:
        log.error("request_unexpected_error", route="telegram_webhook", exc_info=True)
        return _internal_error()

    background = BackgroundTask(follow_up) if follow_up is not None else None
    return JSONResponse({"ok": True}, background=background)


async def health_endpoint(request: Request) -> JSONResponse:
    state: AppState = request.app.state.tubetldr
    return JSONResponse(
        {
            "status": "ok",
            "version": __version__,
            "requests": dict(state.orchestrator.stats),
            "telemetry_pending": state.telemetry.pending,
        }
    )


def create_app(settings: Settings | None = None, *, state: AppState | None = None) -> Starlette:
    """Build the ASGI app. Pass ``state`` to skip resource setup in the lifespan."""
    app = Starlette(
        routes=[
            Route("/api/build", build_endpoint, methods=["GET"]),
            Route("/tg/webhook", telegram_webhook_endpoint, methods=["POST"]),
            Route("/health", health_endpoint, methods=["GET"]),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["GET", "OPTIONS"],
                allow_headers=["Content-Type"],
                max_age=86400,
            )
        ],
        lifespan=_lifespan,
    )
    app.state.settings = state.settings if state is not None else (settings or Settings())
    if state is not None:
        app.state.tubetldr = state
    return app


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()
    _setup_logging(settings)
    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
    )


if __name__ == "__main__":
    main()
