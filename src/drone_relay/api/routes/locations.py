"""Drone location endpoints."""
import logging
from datetime import timedelta
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status

from ...core.dependencies import get_relay
from ...core.errors import IngressValidationError
from ...models.events import utc_now
from ...models.schemas import LocationResponse
from ...services.ingress import IngressSource
from ...services.relay import RelayService

router = APIRouter(tags=["Drones"])
logger = logging.getLogger(__name__)


@router.post("/api/drones/location", response_model=LocationResponse)
@router.post("/location", response_model=LocationResponse)
async def receive_location(
    payload: Dict[str, Any] = Body(...),
    relay: RelayService = Depends(get_relay),
) -> LocationResponse:
    """
    Receive a drone location update.

    The update is validated, cached as the drone's last known location,
    broadcast to subscribers of the drone's room and of the all-drones room,
    and queued for upstream forwarding. Forwarding happens in the background
    and never affects this response.
    """
    try:
        result = await relay.ingress.ingest_location(IngressSource.DIRECT, payload)
    except IngressValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.to_dict())

    return LocationResponse(
        success=True,
        message="Location updated successfully",
        data=result.payload,
        broadcasted=result.broadcasted,
        clients_notified=result.clients_notified,
    )


@router.get("/api/drones/location/{entity_id}")
async def get_location(
    entity_id: str,
    relay: RelayService = Depends(get_relay),
) -> Dict[str, Any]:
    """Last known location of a drone."""
    entry = relay.location_store.get_entry(entity_id)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No location known for drone {entity_id}",
        )
    return {
        "success": True,
        "entityId": entity_id,
        "location": entry.event.payload,
        "storedAt": entry.stored_at.isoformat(),
    }


@router.get("/api/drones/active")
async def list_active_drones(relay: RelayService = Depends(get_relay)) -> Dict[str, Any]:
    """Drones that reported within the activity threshold."""
    cutoff = utc_now() - timedelta(seconds=relay.settings.active_threshold_seconds)
    drones = [
        {**entry.event.payload, "lastUpdate": entry.stored_at.isoformat()}
        for entry in relay.location_store.entries()
        if entry.stored_at >= cutoff
    ]
    return {"success": True, "count": len(drones), "drones": drones}


@router.get("/api/drones/stats")
async def drone_stats(relay: RelayService = Depends(get_relay)) -> Dict[str, Any]:
    """Ingest, cache and forwarding counters."""
    cutoff = utc_now() - timedelta(seconds=relay.settings.active_threshold_seconds)
    entries = relay.location_store.entries()
    ingress = relay.ingress
    return {
        "success": True,
        "stats": {
            "totalLocationUpdates": ingress.accepted["location"],
            "rejectedLocationUpdates": ingress.rejected["location"],
            "uniqueDrones": len(entries),
            "activeDrones": sum(1 for entry in entries if entry.stored_at >= cutoff),
            "forwarding": relay.forwarding_stats(),
        },
    }
