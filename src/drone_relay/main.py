"""
Drone Relay Service - Main FastAPI Application

Receives drone location pings and simulation data, keeps the last known
value per drone and per order, and fans every update out to live
subscribers over WebSocket or Server-Sent Events.

Key Features:
- REST API for location, simulation and broadcast intake
- Room-based WebSocket fan-out with a periodic status heartbeat
- SSE streaming for HTTP-only consumers
- Fire-and-forget forwarding of locations to an upstream server
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import router as api_router
from .core.config import settings
from .services.relay import RelayService

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Builds the relay on startup and stops its background work on shutdown.
    """
    relay = RelayService(settings)
    app.state.relay = relay
    await relay.initialize()

    yield

    await relay.shutdown()
    app.state.relay = None


app = FastAPI(
    title="Drone Relay Service",
    description="Location relay and live fan-out for the drone delivery demo",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "drone_relay.main:app",
        host="0.0.0.0",
        port=settings.service_port,
        reload=settings.debug,
    )
