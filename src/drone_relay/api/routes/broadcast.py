"""
Broadcast endpoints used by the data provider to push events to live clients.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError

from ...core.dependencies import get_relay
from ...core.errors import BroadcastUnavailableError, IngressValidationError
from ...models.events import CustomBroadcast, utc_now
from ...models.schemas import BroadcastResponse
from ...services.ingress import RELAY_SOURCE, EventKind, IngressSource, format_validation_errors
from ...services.relay import RelayService

router = APIRouter(tags=["Broadcast"])
logger = logging.getLogger(__name__)

RELAYED_KINDS = {
    "simulation": EventKind.SIMULATION,
    "order": EventKind.ORDER,
}


def _unavailable(kind: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={
            "error": "WebSocket service not available",
            "message": f"Cannot broadcast {kind} data",
        },
    )


@router.post("/broadcast/{kind}", response_model=BroadcastResponse)
async def broadcast(
    kind: str,
    payload: Dict[str, Any] = Body(...),
    relay: RelayService = Depends(get_relay),
) -> BroadcastResponse:
    """
    Relay an event to live subscribers.

    - ``simulation``: ``{data, timestamp?}`` to the simulation room
    - ``order``: ``{data, timestamp?}`` to the order room
    - ``custom``: ``{event, data, room}`` to an arbitrary room
    """
    if kind == "custom":
        return await _broadcast_custom(payload, relay)

    event_kind = RELAYED_KINDS.get(kind)
    if event_kind is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown broadcast kind: {kind}",
        )

    try:
        result = await relay.ingress.ingest(IngressSource.RELAYED, event_kind, payload)
    except IngressValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.to_dict())

    if not result.broadcasted:
        logger.warning(f"Broadcaster not available for {kind} data")
        raise _unavailable(kind)

    logger.info(f"{kind} data broadcasted to {result.clients_notified} client(s)")
    return BroadcastResponse(
        success=True,
        message=f"{kind} data broadcasted successfully",
        clients_notified=result.clients_notified,
    )


async def _broadcast_custom(payload: Dict[str, Any], relay: RelayService) -> BroadcastResponse:
    try:
        request = CustomBroadcast.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Missing event name, room or data", "details": format_validation_errors(e)},
        )

    data = {
        **request.data,
        "broadcastTimestamp": utc_now().isoformat(),
        "source": RELAY_SOURCE,
    }
    try:
        notified = await relay.broadcaster.publish(request.event, data, rooms=[request.room])
    except BroadcastUnavailableError:
        raise _unavailable("custom")

    logger.info(f"Custom event '{request.event}' broadcasted to room '{request.room}'")
    return BroadcastResponse(
        success=True,
        message=f"Custom event '{request.event}' broadcasted successfully",
        clients_notified=notified,
        room=request.room,
    )


@router.get("/broadcast/status")
async def broadcast_status(relay: RelayService = Depends(get_relay)) -> Dict[str, Any]:
    """Broadcaster availability and live subscriber count."""
    broadcaster = relay.broadcaster
    running = broadcaster.is_running
    return {
        "service": "WebSocket Broadcast Service",
        "status": "available" if running else "unavailable",
        "connectedClients": broadcaster.connection_count,
        "rooms": broadcaster.rooms(),
        "timestamp": utc_now().isoformat(),
        "capabilities": {
            "simulationBroadcast": running,
            "orderBroadcast": running,
            "customBroadcast": running,
            "roomSupport": running,
        },
    }
