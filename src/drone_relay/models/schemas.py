from typing import Any, Dict, List, Optional

from pydantic import Field

from .events import BaseDTO


class LocationResponse(BaseDTO):
    """Response after ingesting a location update."""
    success: bool = Field(..., description="Whether the update was accepted")
    message: str = Field(default="", description="Status message")
    data: Dict[str, Any] = Field(..., description="Normalized location record")
    broadcasted: bool = Field(..., description="Whether live delivery happened")
    clients_notified: int = Field(default=0, description="Subscribers notified")


class BroadcastResponse(BaseDTO):
    """Response after relaying an event to subscribers."""
    success: bool = Field(..., description="Whether the broadcast happened")
    message: str = Field(default="", description="Status message")
    clients_notified: int = Field(..., description="Subscribers notified")
    room: Optional[str] = Field(default=None, description="Target room for custom events")


class SimulationResponse(BaseDTO):
    """Response after storing a simulation."""
    success: bool
    message: str = ""
    order_id: str
    broadcasted: bool


class HealthResponse(BaseDTO):
    """Health check response."""
    status: str = Field(..., description="Service status")
    service: str = Field(..., description="Service name")
    broadcaster_running: bool = Field(..., description="Whether live delivery is available")
    connected_clients: int = Field(..., description="Number of live subscribers")
    forwarding: Dict[str, Any] = Field(default_factory=dict, description="Forwarding counters")


class ConnectionInfo(BaseDTO):
    subscriber_id: str
    client: Optional[str] = None
    topics: List[str] = Field(default_factory=list)
    connected_at: str
    pending: int = 0
