"""
Ingress adapter: validates and normalizes inbound events, then stores,
broadcasts and (for locations) forwards them.

Events arrive from two sources. ``direct`` events come from producers
calling the HTTP API (drone location pings, simulation intake). ``relayed``
events were produced elsewhere and handed to us for fan-out (broadcast
requests from the data provider, orders polled from the upstream server).

Location updates are scoped to the drone's room and the all-drones room.
Simulation data and order notifications go to every connection.
"""
import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ValidationError

from ..core.config import Settings
from ..core.errors import BroadcastUnavailableError, IngressValidationError
from ..models.events import (
    Event,
    LocationRecord,
    LocationUpdate,
    RelayedBroadcast,
    SimulationIntake,
    utc_now,
)
from .broadcaster import (
    LOCATION_UPDATE,
    ORDER_NOTIFICATION,
    SIMULATION_DATA,
    Broadcaster,
)
from .event_store import LastValueCache
from .forwarder import ForwardingWorker

logger = logging.getLogger(__name__)

FORWARD_SOURCE = "drone_simulation"
RELAY_SOURCE = "data_provider"


class IngressSource(str, Enum):
    DIRECT = "direct"
    RELAYED = "relayed"


class EventKind(str, Enum):
    LOCATION = "location"
    SIMULATION = "simulation"
    ORDER = "order"


@dataclass
class IngressResult:
    kind: EventKind
    source: IngressSource
    event: Event
    broadcasted: bool
    clients_notified: int = 0
    forwarded: bool = False

    @property
    def key(self) -> str:
        return self.event.key

    @property
    def payload(self) -> Dict[str, Any]:
        return self.event.payload


def format_validation_errors(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {
            "field": ".".join(str(part) for part in err["loc"]) or "body",
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]


def correlation_key(payload: Dict[str, Any]) -> str:
    """
    Order id used as the correlation key for simulation and order events.

    Looks at a nested ``order`` object first, then the payload itself, and
    falls back to a fresh UUID when neither carries an id.
    """
    candidates = []
    order = payload.get("order")
    if isinstance(order, dict):
        candidates.append(order)
    candidates.append(payload)

    for obj in candidates:
        for field_name in ("_id", "id", "orderId"):
            value = obj.get(field_name)
            if value not in (None, ""):
                return str(value)
    return str(uuid4())


class IngressAdapter:
    """
    Single entry point for every inbound event.

    A payload that fails validation raises ``IngressValidationError`` before
    anything is stored, broadcast or forwarded. Once validated, the store
    write always happens; a stopped broadcaster only turns off live delivery.
    """

    def __init__(
        self,
        location_store: LastValueCache,
        simulation_store: LastValueCache,
        order_store: LastValueCache,
        broadcaster: Broadcaster,
        worker: Optional[ForwardingWorker],
        settings: Settings,
    ):
        self.location_store = location_store
        self.simulation_store = simulation_store
        self.order_store = order_store
        self.broadcaster = broadcaster
        self.worker = worker
        self.settings = settings

        self.accepted: Counter = Counter()
        self.rejected: Counter = Counter()

    async def ingest(
        self,
        source: IngressSource,
        kind: EventKind,
        raw: Any,
    ) -> IngressResult:
        """Dispatch ``raw`` to the handler for ``kind``."""
        if kind == EventKind.LOCATION:
            return await self.ingest_location(source, raw)
        if kind == EventKind.SIMULATION:
            return await self.ingest_simulation(source, raw)
        if kind == EventKind.ORDER:
            return await self.ingest_order(source, raw)
        raise IngressValidationError(f"Unknown event kind: {kind}")

    # =========================================================================
    # Locations
    # =========================================================================

    async def ingest_location(self, source: IngressSource, raw: Any) -> IngressResult:
        update = self._validate(EventKind.LOCATION, LocationUpdate, raw,
                                "Missing or invalid location fields")

        now = utc_now()
        record = LocationRecord(
            entity_id=update.entity_id,
            latitude=update.latitude,
            longitude=update.longitude,
            capacity_metric=update.capacity_metric,
            derived_status=self.derive_status(update.capacity_metric),
            timestamp=update.timestamp or now,
            received_at=now,
        )
        wire = record.to_wire()
        event = Event(topic=LOCATION_UPDATE, key=record.entity_id, payload=wire,
                      timestamp=record.timestamp)

        self.location_store.put(record.entity_id, event)
        broadcasted, notified = await self._broadcast(
            self.broadcaster.publish_location(record.entity_id, wire)
        )
        forwarded = self._submit_forward(record)

        self.accepted[EventKind.LOCATION.value] += 1
        logger.info(
            f"Location update received for drone {record.entity_id}: "
            f"{record.latitude}, {record.longitude} (Battery: {record.capacity_metric}%)"
        )
        return IngressResult(
            kind=EventKind.LOCATION,
            source=source,
            event=event,
            broadcasted=broadcasted,
            clients_notified=notified,
            forwarded=forwarded,
        )

    def derive_status(self, capacity: float) -> str:
        return "active" if capacity > self.settings.low_battery_threshold else "low_battery"

    def forward_payload(self, record: LocationRecord) -> Dict[str, Any]:
        return {
            "entityId": record.entity_id,
            "latitude": record.latitude,
            "longitude": record.longitude,
            "capacityMetric": record.capacity_metric,
            "derivedStatus": record.derived_status,
            "timestamp": record.timestamp.isoformat(),
            "source": FORWARD_SOURCE,
        }

    def _submit_forward(self, record: LocationRecord) -> bool:
        if self.worker is None:
            return False
        return self.worker.submit(self.forward_payload(record))

    # =========================================================================
    # Simulations and orders
    # =========================================================================

    async def ingest_simulation(self, source: IngressSource, raw: Any) -> IngressResult:
        """
        Direct intake needs a ``drone`` and an ``order`` object; relayed
        broadcasts need a ``data`` object.
        """
        if source == IngressSource.DIRECT:
            self._validate(EventKind.SIMULATION, SimulationIntake, raw,
                           "Invalid simulation data format")
            payload = dict(raw)
        else:
            payload = self._relayed_payload(EventKind.SIMULATION, raw)

        event = Event(topic=SIMULATION_DATA, key=correlation_key(payload), payload=payload)
        self.simulation_store.put(event.key, event)
        broadcasted, notified = await self._broadcast(
            self.broadcaster.publish(SIMULATION_DATA, payload)
        )

        self.accepted[EventKind.SIMULATION.value] += 1
        logger.info(f"Received simulation data for order {event.key} ({source.value})")
        return IngressResult(
            kind=EventKind.SIMULATION,
            source=source,
            event=event,
            broadcasted=broadcasted,
            clients_notified=notified,
        )

    async def ingest_order(self, source: IngressSource, raw: Any) -> IngressResult:
        payload = self._relayed_payload(EventKind.ORDER, raw)

        event = Event(topic=ORDER_NOTIFICATION, key=correlation_key(payload), payload=payload)
        self.order_store.put(event.key, event)
        broadcasted, notified = await self._broadcast(
            self.broadcaster.publish(ORDER_NOTIFICATION, payload)
        )

        self.accepted[EventKind.ORDER.value] += 1
        logger.info(f"Order notification for {event.key} ({source.value})")
        return IngressResult(
            kind=EventKind.ORDER,
            source=source,
            event=event,
            broadcasted=broadcasted,
            clients_notified=notified,
        )

    def _relayed_payload(self, kind: EventKind, raw: Any) -> Dict[str, Any]:
        request = self._validate(kind, RelayedBroadcast, raw, f"Missing {kind.value} data")
        payload = dict(request.data)
        payload["broadcastTimestamp"] = request.timestamp or utc_now().isoformat()
        payload.setdefault("source", RELAY_SOURCE)
        return payload

    # =========================================================================
    # Helpers
    # =========================================================================

    def _validate(self, kind: EventKind, model: type, raw: Any, message: str) -> BaseModel:
        if not isinstance(raw, dict):
            self.rejected[kind.value] += 1
            raise IngressValidationError(message, [
                {"field": "body", "message": "Payload must be a JSON object", "type": "dict_type"},
            ])
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            self.rejected[kind.value] += 1
            logger.debug(f"Rejected {kind.value} payload: {e}")
            raise IngressValidationError(message, format_validation_errors(e)) from e

    async def _broadcast(self, publish) -> Tuple[bool, int]:
        try:
            notified = await publish
        except BroadcastUnavailableError:
            logger.warning("Broadcaster unavailable, event stored without live delivery")
            return False, 0
        return True, notified

    def stats(self) -> Dict[str, Any]:
        return {
            "accepted": dict(self.accepted),
            "rejected": dict(self.rejected),
        }
