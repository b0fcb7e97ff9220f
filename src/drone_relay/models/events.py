"""
Event DTOs for the drone relay.

Wire models use camelCase aliases for JSON and accept snake_case field names
in Python code. Payloads of simulation and order events are producer-defined
and passed through unmodified.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseDTO(BaseModel):
    """
    Base configuration for all DTOs.

    - Aliases are generated in camelCase for JSON serialization.
    - Allows population by field name (snake_case) in Python code.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Event(BaseDTO):
    """
    A relayed event.

    Fields:
        topic: Event kind used to select subscribers (e.g. "locationUpdate")
        key: Correlation id (drone serial number, order id) for last-value lookup
        payload: Opaque JSON-like mapping, passed through unmodified
        timestamp: When the event was produced
    """
    topic: str = Field(..., description="Event kind / topic")
    key: str = Field(..., description="Correlation key")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Opaque event payload")
    timestamp: datetime = Field(default_factory=utc_now, description="Event time")


class LocationUpdate(BaseDTO):
    """Inbound location ping. Accepts the legacy serialNumber/batteryCapacity names."""
    entity_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("entityId", "serialNumber", "entity_id"),
        description="Drone identifier",
    )
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    capacity_metric: float = Field(
        ...,
        ge=0,
        le=100,
        validation_alias=AliasChoices("capacityMetric", "batteryCapacity", "capacity_metric"),
        description="Battery capacity in percent",
    )
    timestamp: Optional[datetime] = Field(default=None, description="Producer timestamp")


class LocationRecord(BaseDTO):
    """Normalized location record as stored, broadcast and returned to callers."""
    entity_id: str
    latitude: float
    longitude: float
    capacity_metric: float
    derived_status: str
    timestamp: datetime
    received_at: datetime = Field(default_factory=utc_now)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SimulationIntake(BaseModel):
    """Direct simulation intake: a drone and the order it is delivering."""
    model_config = ConfigDict(extra="allow")

    drone: Dict[str, Any]
    order: Dict[str, Any]


class RelayedBroadcast(BaseModel):
    """Broadcast request relayed by the data provider."""
    model_config = ConfigDict(extra="allow")

    data: Dict[str, Any]
    timestamp: Optional[str] = None


class CustomBroadcast(BaseModel):
    """Custom event broadcast into a single room."""
    model_config = ConfigDict(extra="allow")

    event: str = Field(..., min_length=1)
    data: Dict[str, Any]
    room: str = Field(..., min_length=1)
