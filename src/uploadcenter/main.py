"""Main application entrypoint for the Upload Center engine."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from uploadcenter.api.dependencies import get_engine
from uploadcenter.api.v1 import routes_health
from uploadcenter.api.v1.routes_accounts import router as accounts_router
from uploadcenter.api.v1.routes_queue import router as queue_router
from uploadcenter.core.config import settings
from uploadcenter.core.exceptions import BackendError
from uploadcenter.core.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load accounts and categories on startup; drain the queue driver on shutdown."""
    engine = get_engine()
    try:
        await engine.load_accounts()
        await engine.load_categories()
    except BackendError as e:
        logger.warning(f"Backend unavailable at startup, accounts not loaded: {e}")
    yield
    await engine.aclose()
    await engine.backend.aclose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    setup_logging()

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
    )

    app.include_router(routes_health.router, tags=["health"])
    app.include_router(queue_router)
    app.include_router(accounts_router)

    return app


# Export app instance for ASGI servers
app = create_app()
