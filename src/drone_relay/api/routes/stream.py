"""
Live delivery transports: WebSocket at ``/ws`` and Server-Sent Events at
``/v1/events/stream``.

Both transports register a subscription with the broadcaster and then drain
its queue. Outbound frames are ``{"event", "data", "timestamp"}`` objects.
"""
import asyncio
import json
import logging
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, WebSocket, WebSocketDisconnect, status
from sse_starlette.sse import EventSourceResponse

from ...core.dependencies import get_relay, get_ws_relay
from ...core.errors import BroadcastUnavailableError
from ...models.events import utc_now
from ...services.broadcaster import ORDER_ROOM, SIMULATION_ROOM, Broadcaster
from ...services.relay import RelayService

router = APIRouter(tags=["Stream"])
logger = logging.getLogger(__name__)

# Close code for "try again later"
WS_TRY_AGAIN_LATER = 1013


async def _send_error(broadcaster: Broadcaster, subscriber_id: str, code: str, message: str) -> None:
    await broadcaster.send_to(subscriber_id, "error", {"code": code, "message": message})


async def handle_client_message(broadcaster: Broadcaster, subscriber_id: str, text: str) -> None:
    """
    Apply one inbound client message.

    Replies (acks, pong, errors) are queued on the subscriber like any other
    frame. A bad message never closes the connection.
    """
    try:
        message = json.loads(text)
    except json.JSONDecodeError:
        await _send_error(broadcaster, subscriber_id, "BAD_REQUEST", "invalid json")
        return

    if not isinstance(message, dict):
        await _send_error(broadcaster, subscriber_id, "BAD_REQUEST", "message must be a JSON object")
        return

    msg_type = message.get("type")

    if msg_type == "ping":
        # Echo the client's fields so it can match replies
        echo = {k: v for k, v in message.items() if k != "type"}
        await broadcaster.send_to(subscriber_id, "pong", {
            **echo,
            "serverTime": utc_now().isoformat(),
            "socketId": subscriber_id,
        })
        return

    if msg_type in ("subscribeToEntity", "unsubscribeFromEntity"):
        entity_id = message.get("id") or message.get("entityId")
        if not entity_id:
            await _send_error(broadcaster, subscriber_id, "BAD_REQUEST", "id required")
            return
        if msg_type == "subscribeToEntity":
            await broadcaster.subscribe_entity(subscriber_id, str(entity_id))
        else:
            await broadcaster.unsubscribe_entity(subscriber_id, str(entity_id))
        return

    if msg_type in ("subscribeToTopic", "unsubscribeFromTopic"):
        topic = message.get("topic")
        if not topic or not isinstance(topic, str):
            await _send_error(broadcaster, subscriber_id, "BAD_REQUEST", "topic required")
            return
        if msg_type == "subscribeToTopic":
            await broadcaster.subscribe(subscriber_id, topic)
        else:
            await broadcaster.unsubscribe(subscriber_id, topic)
        return

    if msg_type == "subscribeToSimulations":
        await broadcaster.subscribe(subscriber_id, SIMULATION_ROOM)
        return
    if msg_type == "unsubscribeFromSimulations":
        await broadcaster.unsubscribe(subscriber_id, SIMULATION_ROOM)
        return
    if msg_type == "subscribeToOrders":
        await broadcaster.subscribe(subscriber_id, ORDER_ROOM)
        return
    if msg_type == "unsubscribeFromOrders":
        await broadcaster.unsubscribe(subscriber_id, ORDER_ROOM)
        return

    await _send_error(broadcaster, subscriber_id, "BAD_REQUEST", f"unknown type: {msg_type}")


async def _sender_loop(websocket: WebSocket, queue: asyncio.Queue) -> None:
    """Drain a subscriber queue onto its websocket."""
    try:
        while True:
            item = await queue.get()
            await websocket.send_text(json.dumps(item))
    except asyncio.CancelledError:
        pass
    except Exception as e:
        # Closed socket; the receive loop notices on its own
        logger.debug(f"WebSocket send failed: {e}")


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    relay: Optional[RelayService] = Depends(get_ws_relay),
):
    await websocket.accept()

    if relay is None or not relay.broadcaster.is_running:
        await websocket.close(code=WS_TRY_AGAIN_LATER, reason="Broadcaster not available")
        return

    broadcaster = relay.broadcaster
    client = f"{websocket.client.host}:{websocket.client.port}" if websocket.client else None
    try:
        subscription = await broadcaster.connect(client=client)
    except BroadcastUnavailableError:
        await websocket.close(code=WS_TRY_AGAIN_LATER, reason="Broadcaster not available")
        return

    subscriber_id = subscription.subscriber_id
    sender = asyncio.create_task(_sender_loop(websocket, subscription.queue))
    reason = "client disconnect"
    try:
        while True:
            text = await websocket.receive_text()
            await handle_client_message(broadcaster, subscriber_id, text)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        reason = f"error: {e}"
        logger.error(f"WebSocket error for {subscriber_id}: {e}", exc_info=True)
    finally:
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        await broadcaster.disconnect(subscriber_id, reason=reason)


async def sse_event_stream(
    broadcaster: Broadcaster,
    topics: List[str],
    client_id: Optional[str] = None,
    heartbeat_interval: float = 15.0,
    check_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncGenerator[Dict[str, str], None]:
    """
    SSE generator for one subscriber.

    Joins ``topics`` up front, then yields every queued frame. Emits a
    ``heartbeat`` event when nothing arrives within ``heartbeat_interval``.
    """
    subscription = await broadcaster.connect(client=client_id)
    subscriber_id = subscription.subscriber_id
    for topic in topics:
        await broadcaster.subscribe(subscriber_id, topic)

    logger.info(f"New SSE connection {subscriber_id} from {client_id} for topics: {topics}")

    try:
        while True:
            if check_disconnected and await check_disconnected():
                logger.info(f"Client {subscriber_id} disconnected")
                break

            try:
                item = await asyncio.wait_for(subscription.queue.get(), timeout=heartbeat_interval)
            except asyncio.TimeoutError:
                yield {
                    "event": "heartbeat",
                    "data": json.dumps({"socketId": subscriber_id}),
                }
                continue

            yield {"event": item["event"], "data": json.dumps(item)}
    except asyncio.CancelledError:
        logger.info(f"Stream cancelled for connection {subscriber_id}")
        raise
    finally:
        await broadcaster.disconnect(subscriber_id, reason="stream closed")


@router.get("/v1/events/stream")
async def stream_events(
    request: Request,
    topics: str = Query(..., description="Comma-separated list of rooms to join"),
    client_id: Optional[str] = Query(None, description="Caller identifier, for logs"),
    relay: RelayService = Depends(get_relay),
) -> EventSourceResponse:
    """Subscribe to live updates via Server-Sent Events (SSE)."""
    topic_list = [t.strip() for t in topics.split(",") if t.strip()]
    if not topic_list:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one topic is required")

    if not relay.broadcaster.is_running:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Broadcaster not available",
        )

    return EventSourceResponse(
        sse_event_stream(
            relay.broadcaster,
            topic_list,
            client_id=client_id,
            heartbeat_interval=relay.settings.stream_heartbeat_interval,
            check_disconnected=request.is_disconnected,
        )
    )
