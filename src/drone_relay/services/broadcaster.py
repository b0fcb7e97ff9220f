"""
Publish/subscribe hub for live updates.

Each connected client owns one ``Subscription`` holding the set of rooms it
joined and a bounded outbound queue. Publishing never touches the network:
it enqueues the message on every matching subscription and returns. The
WebSocket and SSE transports drain those queues, which keeps delivery to a
given subscriber in publish order.

Delivery is at-most-once and fire-and-forget. A subscriber whose queue is
full loses its oldest pending message; a subscriber that disconnects simply
stops receiving.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set
from uuid import uuid4

from ..core.errors import BroadcastUnavailableError
from ..models.events import utc_now

logger = logging.getLogger(__name__)

# Rooms
ENTITY_ROOM_PREFIX = "drone_"
ALL_ENTITIES_ROOM = "all_drones"
SIMULATION_ROOM = "simulation_updates"
ORDER_ROOM = "order_notifications"

# Event names
LOCATION_UPDATE = "locationUpdate"
SIMULATION_DATA = "simulationData"
ORDER_NOTIFICATION = "orderNotification"
SYSTEM_STATUS = "systemStatus"

CAPABILITIES = [
    "droneLocationUpdates",
    "simulationData",
    "orderNotifications",
    "systemStatus",
]


def entity_room(entity_id: str) -> str:
    """Room for a single drone, or the wildcard room for ``"all"``."""
    if entity_id == "all":
        return ALL_ENTITIES_ROOM
    return f"{ENTITY_ROOM_PREFIX}{entity_id}"


def make_message(event: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {"event": event, "data": data, "timestamp": utc_now().isoformat()}


@dataclass
class Subscription:
    """A connected client and the rooms it has joined."""
    subscriber_id: str
    queue: asyncio.Queue
    topics: Set[str] = field(default_factory=set)
    client: Optional[str] = None
    connected_at: datetime = field(default_factory=utc_now)
    dropped: int = 0

    def deliver(self, message: Dict[str, Any]) -> None:
        # Don't block if queue is full (drop oldest messages)
        if self.queue.full():
            try:
                self.queue.get_nowait()
                self.dropped += 1
                logger.warning(f"Subscriber {self.subscriber_id} is slow, dropped oldest message")
            except asyncio.QueueEmpty:
                pass
        self.queue.put_nowait(message)


class Broadcaster:
    """
    Fan-out hub owning every subscription.

    Room membership changes only through the subscriber's own
    subscribe/unsubscribe calls; the broadcaster never moves subscribers
    between rooms by itself.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._running = False
        self._subscriptions: Dict[str, Subscription] = {}
        # Room -> subscriber ids
        self._rooms: Dict[str, Set[str]] = {}

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        if self._running:
            logger.warning("Broadcaster already running")
            return
        self._running = True
        logger.info("Broadcaster started")

    async def stop(self) -> None:
        self._subscriptions.clear()
        self._rooms.clear()
        self._running = False
        logger.info("Broadcaster stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def connection_count(self) -> int:
        return len(self._subscriptions)

    # =========================================================================
    # Subscriber state machine
    # =========================================================================

    async def connect(self, client: Optional[str] = None) -> Subscription:
        """Register a new connection and queue its welcome message."""
        if not self._running:
            raise BroadcastUnavailableError("Broadcaster is not running")

        subscription = Subscription(
            subscriber_id=str(uuid4()),
            queue=asyncio.Queue(maxsize=self.queue_size),
            client=client,
        )
        self._subscriptions[subscription.subscriber_id] = subscription

        subscription.deliver(make_message("connected", {
            "message": "Connected to Drone Location Service",
            "socketId": subscription.subscriber_id,
            "capabilities": CAPABILITIES,
        }))
        logger.info(
            f"Client connected: {subscription.subscriber_id} (Total: {self.connection_count})"
        )
        return subscription

    async def subscribe(
        self,
        subscriber_id: str,
        topic: str,
        ack: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Join ``topic``. Subscribing twice only re-sends the acknowledgement."""
        subscription = self._get(subscriber_id)
        subscription.topics.add(topic)
        self._rooms.setdefault(topic, set()).add(subscriber_id)

        data = {"message": f"Subscribed to {topic}", "room": topic}
        if ack:
            data.update(ack)
        subscription.deliver(make_message("subscribed", data))
        logger.debug(f"Client {subscriber_id} subscribed to {topic}")

    async def unsubscribe(self, subscriber_id: str, topic: str) -> None:
        """Leave ``topic``. Unknown subscribers and topics are ignored."""
        subscription = self._subscriptions.get(subscriber_id)
        if subscription is None:
            return

        subscription.topics.discard(topic)
        self._leave_room(topic, subscriber_id)
        subscription.deliver(make_message("unsubscribed", {
            "message": f"Unsubscribed from {topic}",
            "room": topic,
        }))
        logger.debug(f"Client {subscriber_id} unsubscribed from {topic}")

    async def subscribe_entity(self, subscriber_id: str, entity_id: str) -> str:
        room = entity_room(entity_id)
        await self.subscribe(subscriber_id, room, ack={"entityId": entity_id})
        return room

    async def unsubscribe_entity(self, subscriber_id: str, entity_id: str) -> str:
        room = entity_room(entity_id)
        await self.unsubscribe(subscriber_id, room)
        return room

    async def disconnect(self, subscriber_id: str, reason: str = "client disconnect") -> None:
        subscription = self._subscriptions.pop(subscriber_id, None)
        if subscription is None:
            return

        for topic in subscription.topics:
            self._leave_room(topic, subscriber_id)
        logger.info(
            f"Client disconnected: {subscriber_id} "
            f"(Reason: {reason}, Remaining: {self.connection_count})"
        )

    # =========================================================================
    # Publishing
    # =========================================================================

    async def publish(
        self,
        event: str,
        data: Dict[str, Any],
        rooms: Optional[Iterable[str]] = None,
    ) -> int:
        """
        Deliver ``event`` to the union of subscribers of ``rooms``.

        With ``rooms=None`` the event goes to every connection. A subscriber
        that sits in several of the target rooms still receives the event
        once. Returns the number of subscribers notified.
        """
        if not self._running:
            raise BroadcastUnavailableError("Broadcaster is not running")

        if rooms is None:
            targets = list(self._subscriptions.values())
        else:
            ids: Set[str] = set()
            for room in rooms:
                ids.update(self._rooms.get(room, ()))
            targets = [self._subscriptions[i] for i in ids if i in self._subscriptions]

        if not targets:
            logger.debug(f"No subscribers for {event} (rooms: {rooms})")
            return 0

        message = make_message(event, data)
        for subscription in targets:
            subscription.deliver(message)

        logger.debug(f"Broadcast {event} to {len(targets)} subscriber(s)")
        return len(targets)

    async def publish_location(self, entity_id: str, record: Dict[str, Any]) -> int:
        """Deliver a location update to the drone's room and the wildcard room."""
        return await self.publish(
            LOCATION_UPDATE,
            record,
            rooms=[entity_room(entity_id), ALL_ENTITIES_ROOM],
        )

    async def publish_status(self, services: Optional[Dict[str, str]] = None) -> int:
        """Heartbeat: current subscriber count, sent to every connection."""
        return await self.publish(SYSTEM_STATUS, {
            "connectedClients": self.connection_count,
            "timestamp": utc_now().isoformat(),
            "services": services or {"locationReceiver": "online"},
        })

    async def send_to(self, subscriber_id: str, event: str, data: Dict[str, Any]) -> bool:
        """Reply to a single subscriber (pong, protocol errors)."""
        subscription = self._subscriptions.get(subscriber_id)
        if subscription is None:
            return False
        subscription.deliver(make_message(event, data))
        return True

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_subscription(self, subscriber_id: str) -> Optional[Subscription]:
        return self._subscriptions.get(subscriber_id)

    def subscriptions(self) -> List[Subscription]:
        return list(self._subscriptions.values())

    def room_members(self, room: str) -> Set[str]:
        return set(self._rooms.get(room, ()))

    def rooms(self) -> Dict[str, int]:
        return {room: len(members) for room, members in self._rooms.items()}

    def _get(self, subscriber_id: str) -> Subscription:
        subscription = self._subscriptions.get(subscriber_id)
        if subscription is None:
            raise KeyError(f"Unknown subscriber: {subscriber_id}")
        return subscription

    def _leave_room(self, topic: str, subscriber_id: str) -> None:
        members = self._rooms.get(topic)
        if members is None:
            return
        members.discard(subscriber_id)
        if not members:
            del self._rooms[topic]
