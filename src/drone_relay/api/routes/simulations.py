"""
Simulation intake and lookup.

Simulations are keyed by order id. Starting a simulation publishes the
drone's initial position as a regular location update.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status

from ...core.dependencies import get_relay
from ...core.errors import IngressValidationError
from ...models.schemas import SimulationResponse
from ...services.ingress import IngressSource
from ...services.relay import RelayService

router = APIRouter(tags=["Simulations"])
logger = logging.getLogger(__name__)


@router.post("/simulation", response_model=SimulationResponse)
async def receive_simulation(
    payload: Dict[str, Any] = Body(...),
    relay: RelayService = Depends(get_relay),
) -> SimulationResponse:
    """Store a ``{drone, order}`` simulation and notify simulation subscribers."""
    try:
        result = await relay.ingress.ingest_simulation(IngressSource.DIRECT, payload)
    except IngressValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.to_dict())

    return SimulationResponse(
        success=True,
        message="Simulation data received successfully",
        order_id=result.key,
        broadcasted=result.broadcasted,
    )


@router.get("/simulation")
async def get_latest_simulation(relay: RelayService = Depends(get_relay)) -> Dict[str, Any]:
    """Most recently stored simulation."""
    event = relay.simulation_store.get_most_recent()
    if event is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No simulation data available",
        )
    return event.payload


@router.get("/simulations/active")
async def list_simulations(relay: RelayService = Depends(get_relay)) -> Dict[str, Any]:
    simulations = [
        {
            "orderId": entry.key,
            "drone": entry.event.payload.get("drone"),
            "order": entry.event.payload.get("order"),
            "receivedAt": entry.stored_at.isoformat(),
            "source": entry.event.payload.get("source", "direct"),
        }
        for entry in relay.simulation_store.entries()
    ]
    return {"success": True, "count": len(simulations), "simulations": simulations}


@router.post("/simulation/{order_id}/start")
async def start_simulation(
    order_id: str,
    relay: RelayService = Depends(get_relay),
) -> Dict[str, Any]:
    """
    Start a stored simulation by publishing the drone's initial location.

    Coordinates default to 0 and battery to 100 when the drone record does
    not carry them.
    """
    event = relay.simulation_store.get(order_id)
    if event is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Simulation not found for order {order_id}",
        )

    drone = event.payload.get("drone") or {}
    initial = {
        "entityId": drone.get("serialNumber") or drone.get("entityId"),
        "latitude": drone.get("latitude", 0),
        "longitude": drone.get("longitude", 0),
        "capacityMetric": drone.get("batteryCapacity", drone.get("capacityMetric", 100)),
    }

    try:
        result = await relay.ingress.ingest_location(IngressSource.DIRECT, initial)
    except IngressValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.to_dict())

    logger.info(f"Started simulation for order {order_id} (drone {result.key})")
    return {
        "success": True,
        "message": "Simulation started successfully",
        "orderId": order_id,
        "initialLocation": result.payload,
    }


@router.get("/orders")
async def list_orders(relay: RelayService = Depends(get_relay)) -> Dict[str, Any]:
    """Cached order notifications, relayed or polled from upstream."""
    orders = [
        {"orderId": entry.key, "receivedAt": entry.stored_at.isoformat(), "data": entry.event.payload}
        for entry in relay.order_store.entries()
    ]
    return {"success": True, "count": len(orders), "orders": orders}


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    relay: RelayService = Depends(get_relay),
) -> Dict[str, Any]:
    entry = relay.order_store.get_entry(order_id)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No order notification for {order_id}",
        )
    return {
        "success": True,
        "orderId": order_id,
        "receivedAt": entry.stored_at.isoformat(),
        "data": entry.event.payload,
    }


@router.post("/external/poll")
async def poll_upstream_orders(relay: RelayService = Depends(get_relay)) -> Dict[str, Any]:
    """Poll the upstream server for orders now instead of waiting for the timer."""
    relayed = await relay.background_tasks.poll_orders_once()
    return {
        "success": True,
        "message": "Upstream order poll completed",
        "ordersRelayed": relayed,
    }
