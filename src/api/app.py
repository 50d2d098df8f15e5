"""
FastAPI application factory.

``create_app()`` assembles the application with CORS, error handlers,
routers, the health endpoint and a lifespan that starts and stops the
orchestration context. The module-level ``app`` instance allows
``uvicorn src.api.app:app --reload``.
"""

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.middleware.error_handler import register_error_handlers
from src.api.routes import system, translate
from src.core.config import get_settings
from src.core.models import HealthResponse
from src.services.context import OrchestrationContext, create_context


def create_app(context: OrchestrationContext | None = None) -> FastAPI:
    """Build and return a fully configured FastAPI application.

    Args:
        context: Pre-built orchestration context; when omitted one is
            created from settings at startup.
    """
    settings = get_settings()
    logging.getLogger("src").setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.context = context or create_context(settings)
        await app.state.context.start()
        try:
            yield
        finally:
            await app.state.context.aclose()

    app = FastAPI(
        title="TransRelay",
        description="Translation request orchestration with caching, batching, "
        "health-aware routing and graceful degradation.",
        version="0.1.0",
        lifespan=lifespan,
    )

    # -- CORS --
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],  # Dev frontend
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -- Error handlers --
    register_error_handlers(app)

    # -- Health check (root-level, not under /api/v1) --
    @app.get("/health", response_model=HealthResponse, tags=["system"])
    async def health() -> HealthResponse:
        return HealthResponse(timestamp=datetime.now(UTC))

    # -- REST routes --
    app.include_router(translate.router, prefix="/api/v1")
    app.include_router(system.router, prefix="/api/v1")

    return app


app = create_app()
