from typing import Dict

from fastapi import APIRouter, Depends

from ... import __version__
from ...core.dependencies import get_relay
from ...models.schemas import HealthResponse
from ...services.relay import RelayService

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(relay: RelayService = Depends(get_relay)) -> HealthResponse:
    """
    Health check endpoint.

    Returns service status, broadcaster state, live subscriber count and
    forwarding counters.
    """
    broadcaster = relay.broadcaster
    return HealthResponse(
        status="healthy" if broadcaster.is_running else "degraded",
        service=relay.settings.service_name,
        broadcaster_running=broadcaster.is_running,
        connected_clients=broadcaster.connection_count,
        forwarding=relay.forwarding_stats(),
    )


@router.get("/", tags=["Info"])
async def root() -> Dict[str, str]:
    """Root endpoint with service info."""
    return {
        "service": "drone-relay-service",
        "version": __version__,
        "docs": "/docs",
    }
