"""
FastAPI application factory for the league live-match API.

Creates the app with:
- REST routes (matches, standings)
- Middleware stack
- Health check endpoint
- Lifespan management (store connect/close)
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional

from fastapi import FastAPI

from shared.config import SERVICE_VERSION, Settings, get_settings
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import SERVICE_INFO, start_metrics_server
from matchday.state_machine import MatchStateMachine
from storage.base import LeagueStore
from storage.factory import create_store

from api.middleware import setup_middleware
from api.routes.matches import router as matches_router
from api.routes.standings import router as standings_router

logger = get_logger(__name__)

_CONNECT_RETRY_ATTEMPTS = 5
_CONNECT_RETRY_BASE_DELAY_S = 1.0


async def _connect_with_retry(connect_fn: Callable[[], Awaitable[None]], name: str) -> None:
    """Call async connect_fn(); retry with exponential backoff on failure."""
    for attempt in range(1, _CONNECT_RETRY_ATTEMPTS + 1):
        try:
            await connect_fn()
            return
        except Exception as exc:
            if attempt == _CONNECT_RETRY_ATTEMPTS:
                raise
            delay = _CONNECT_RETRY_BASE_DELAY_S * (2 ** (attempt - 1))
            logger.warning(
                "connect_retry",
                name=name,
                attempt=attempt,
                max_attempts=_CONNECT_RETRY_ATTEMPTS,
                delay_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)


def _install(app: FastAPI, store: LeagueStore, settings: Settings) -> None:
    app.state.store = store
    app.state.machine = MatchStateMachine(store, settings=settings)
    SERVICE_INFO.info(
        {
            "service": "api",
            "version": SERVICE_VERSION,
            "backend": store.backend_name,
            "environment": settings.environment.value,
        }
    )


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for testing with an injected store."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Connects the configured store on startup and closes it on shutdown.
    """
    settings = get_settings()
    setup_logging("api")
    start_metrics_server()

    store = getattr(app.state, "store", None) or create_store(settings)
    await _connect_with_retry(store.connect, store.backend_name)
    _install(app, store, settings)

    logger.info(
        "api_service_started",
        host=settings.api_host,
        port=settings.api_port,
        backend=store.backend_name,
    )

    yield

    await store.close()
    logger.info("api_service_stopped")


def create_app(
    store: Optional[LeagueStore] = None,
    *,
    use_lifespan: bool = True,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Pass ``store`` with ``use_lifespan=False`` to serve an already connected
    store, as the tests do.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="League Live API",
        description="Live match clock, phase transitions and standings",
        version=SERVICE_VERSION,
        lifespan=lifespan if use_lifespan else _noop_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    if store is not None:
        _install(app, store, settings)

    setup_middleware(app)

    app.include_router(matches_router)
    app.include_router(standings_router)

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, Any]:
        store = getattr(app.state, "store", None)
        return {
            "status": "ok" if store is not None else "starting",
            "service": "api",
            "backend": store.backend_name if store is not None else None,
        }

    return app


# For running with uvicorn directly
app = create_app()
