"""Entry point for the melody FastAPI application."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
import random

import httpx
from fastapi import FastAPI

from melody import __version__
from melody.api import build_api_router
from melody.config import AppConfig, get_env, load_config
from melody.db import init_db
from melody.logging import configure_logging, get_logger, log_event
from melody.middleware import install_middleware
from melody.runtime import build_runtime
from melody.services.library_service import CatalogClientFactory

logger = get_logger(__name__)


def create_app(
    config: AppConfig | None = None,
    *,
    http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
    catalog_factory: CatalogClientFactory | None = None,
    now_fn: Callable[[], datetime] | None = None,
    rng: random.Random | None = None,
) -> FastAPI:
    """Build the application; services are created when the lifespan starts."""

    app_config = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(app_config.logging.level)
        init_db()
        runtime = build_runtime(
            app_config,
            http_client_factory=http_client_factory,
            catalog_factory=catalog_factory,
            now_fn=now_fn,
            rng=rng,
        )
        app.state.runtime = runtime
        log_event(logger, "app.started", version=__version__)
        try:
            yield
        finally:
            dropped = runtime.close()
            app.state.runtime = None
            log_event(logger, "app.stopped", sessions_dropped=dropped)

    app = FastAPI(title="melody", version=__version__, lifespan=lifespan)
    app.state.config = app_config
    app.state.runtime = None
    install_middleware(app, app_config)
    app.include_router(build_api_router())
    return app


def run() -> None:  # pragma: no cover - exercised manually
    import uvicorn

    port = int(get_env("PORT") or 3001)
    uvicorn.run(create_app(), host="0.0.0.0", port=port)


if __name__ == "__main__":  # pragma: no cover
    run()
