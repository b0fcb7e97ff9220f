"""FastAPI dependencies for reaching the relay service."""

from fastapi import HTTPException, Request, WebSocket, status

from ..services.relay import RelayService


def _relay_from_state(state) -> RelayService | None:
    return getattr(state, "relay", None)


async def get_relay(request: Request) -> RelayService:
    """
    Dependency returning the relay created by the application lifespan.

    Usage:
        @router.post("/endpoint")
        async def my_endpoint(relay: RelayService = Depends(get_relay)):
            ...
    """
    relay = _relay_from_state(request.app.state)
    if relay is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Relay service not initialized",
        )
    return relay


async def get_ws_relay(websocket: WebSocket) -> RelayService | None:
    """WebSocket variant; the endpoint closes the socket itself when None."""
    return _relay_from_state(websocket.app.state)
