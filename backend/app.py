"""
LlamaDock Control API - FastAPI Application

Management surface next to the Ollama-compatible socket server: configuration
CRUD and model session control. The application operates on the same
ServerResources as the socket server; it never builds its own.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.api import configurations, health, session
from backend.dependencies import ServerResources

logger = logging.getLogger(__name__)


# ========== LIFESPAN EVENTS ==========
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Starting LlamaDock control API...")
    yield
    logger.info("🛑 Control API stopped")


def _cors_origins() -> list[str]:
    # Comma-separated list, e.g. LLAMADOCK_CORS_ORIGINS=http://localhost:3000,http://127.0.0.1:5173
    origins_env = os.getenv("LLAMADOCK_CORS_ORIGINS", "")
    if origins_env:
        return [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    return ["*"]


# ========== FASTAPI APP ==========
def create_app(resources: ServerResources) -> FastAPI:
    """
    Build the control application around existing resources.

    Args:
        resources: Shared store and model session

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="LlamaDock Control API",
        description="Manage model configurations and the model session of a LlamaDock server",
        version=resources.config.version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.resources = resources

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ========== EXCEPTION HANDLERS ==========
    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Global exception handler for uncaught errors."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "detail": str(exc),
                "type": type(exc).__name__,
            },
        )

    # ========== ROUTE REGISTRATION ==========
    app.include_router(health.router)
    app.include_router(configurations.router)
    app.include_router(session.router)

    return app
