"""
Nostr Search API

FastAPI application factory for the semantic search service.

Run with ``nostr-search serve`` or
``uvicorn --factory nostr_search.main:create_app``.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from nostr_search.api.v1.search import router as search_router
from nostr_search.config import get_settings
from nostr_search.context import AppContext, build_context
from nostr_search.logging_config import configure_logging, configure_sentry


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """
    Build the application.

    When ``context`` is None the lifespan loads Settings, configures logging
    and builds (and later closes) the context itself. Tests inject a context.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned: Optional[AppContext] = None
        if context is None:
            settings = get_settings()
            configure_logging(settings.LOG_LEVEL)
            configure_sentry(settings)
            owned = build_context(settings)
            app.state.context = owned

        logger = structlog.get_logger()
        logger.info(
            "application_startup",
            app_name="Nostr Search API",
            embedding_provider=app.state.context.settings.EMBEDDING_PROVIDER,
        )

        yield

        if owned is not None:
            owned.close()
        logger.info("application_shutdown")

    app = FastAPI(
        title="Nostr Search API",
        description="Semantic search over ingested Nostr events",
        version="1.0.0",
        lifespan=lifespan,
    )
    if context is not None:
        app.state.context = context

    @app.get("/health", tags=["Health"])
    async def health_check() -> JSONResponse:
        """Health check endpoint for load balancers and monitoring."""
        return JSONResponse(content={"status": "ok"}, status_code=200)

    app.include_router(search_router, prefix="/api/v1")
    return app
