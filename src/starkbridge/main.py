# src/starkbridge/main.py
"""Main entry point for the Stark Bridge application."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from starkbridge import __version__
from starkbridge.api.v1 import bridge_router
from starkbridge.core.settings import settings
from starkbridge.db.session import create_tables
from starkbridge.services.bridge_runtime import BridgeRuntime

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="BTC to Starknet bridge order service",
    version=__version__,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Include API routers
app.include_router(bridge_router, prefix="/api/v1")

app.state.bridge_runtime = None


@app.on_event("startup")
async def on_startup() -> None:
    create_tables()
    if settings.bridge_enabled:
        runtime = BridgeRuntime()
        await runtime.get_components()
        app.state.bridge_runtime = runtime
    else:
        logger.info("Bridge integration disabled; order endpoints will return 503")
        app.state.bridge_runtime = None


@app.on_event("shutdown")
async def on_shutdown() -> None:
    runtime: BridgeRuntime | None = getattr(app.state, "bridge_runtime", None)
    if runtime:
        await runtime.shutdown()
    app.state.bridge_runtime = None


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "network": settings.bridge_network,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("starkbridge.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
