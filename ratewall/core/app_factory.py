"""Application factory for the FastAPI app.

Builds the counter store, the limiters and the selector once, stores them on
``app.state`` and registers middleware, handlers and routers. The lifespan
checks the store on startup and closes it on shutdown.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from ratewall.adapters.rate_limit.base import AbstractCounterStore
from ratewall.adapters.rate_limit.factory import create_counter_store
from ratewall.api.routes import health_router, home_router
from ratewall.core.config import DIMENSIONS, Settings, load_settings
from ratewall.core.exception_handlers import setup_exception_handlers
from ratewall.core.logging import configure_logging
from ratewall.core.middleware import request_id_middleware
from ratewall.core.rate_limit import rate_limit_middleware
from ratewall.services.selector import build_limiter_selector

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Hold the counter store for the lifetime of the app."""

    store: AbstractCounterStore = app.state.counter_store
    reachable = await store.ping()
    logger.info(
        "store.connected" if reachable else "store.unreachable",
        extra={"backend": type(store).__name__},
    )
    try:
        yield
    finally:
        if app.state.owns_counter_store:
            await store.close()


def create_app(
    settings: Settings | None = None,
    *,
    store: AbstractCounterStore | None = None,
    clock: Callable[[], float] = time.time,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Resolved settings; read from the environment when omitted.
        store: Counter store to use instead of the configured backend. The
            caller keeps ownership and must close it.
        clock: Time source for the limiters (UNIX seconds).
        configure_logs: Install the service log handler on the root logger.

    Returns:
        Configured FastAPI app.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    settings = settings or load_settings()

    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(settings.log)

    owns_store = store is None
    if store is None:
        configs = [settings.rate_limit.limiter_config(d) for d in DIMENSIONS]
        key_ttl_ms = max(max(c.window_ms, c.block_ms) for c in configs)
        store = create_counter_store(settings.store, key_ttl_ms=key_ttl_ms)

    selector = build_limiter_selector(
        settings.rate_limit,
        store,
        clock=clock,
        logger=logging.getLogger("ratewall.rate_limit"),
    )

    app = FastAPI(
        title="ratewall",
        description=(
            "Sliding-window rate limiter with a block period, keyed by API token "
            "(API_KEY header) or client IP."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.counter_store = store
    app.state.owns_counter_store = owns_store
    app.state.limiter_selector = selector

    # Middleware: the last registered runs first, so request ids wrap rate limiting
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(home_router)
    app.include_router(health_router)

    return app
