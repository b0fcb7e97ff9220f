"""
Admin endpoints for inspecting relay state.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...core.dependencies import get_relay
from ...models.schemas import ConnectionInfo
from ...services.relay import RelayService

router = APIRouter(tags=["Admin"])


@router.get("/connections")
async def list_connections(relay: RelayService = Depends(get_relay)) -> Dict[str, Any]:
    """Live subscriptions with their rooms and pending queue depth."""
    connections = [
        ConnectionInfo(
            subscriber_id=sub.subscriber_id,
            client=sub.client,
            topics=sorted(sub.topics),
            connected_at=sub.connected_at.isoformat(),
            pending=sub.queue.qsize(),
        ).model_dump(by_alias=True)
        for sub in relay.broadcaster.subscriptions()
    ]
    return {
        "count": len(connections),
        "rooms": relay.broadcaster.rooms(),
        "connections": connections,
    }
