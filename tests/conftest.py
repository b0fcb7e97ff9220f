"""
Pytest configuration for Drone Relay Service tests.
"""
import os
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set the environment BEFORE importing the app so the module-level settings
# never reach out to the real upstream server
os.environ["DEBUG"] = "true"
os.environ["FORWARDING_ENABLED"] = "false"
os.environ["ORDER_POLL_ENABLED"] = "false"
os.environ["STATUS_INTERVAL_SECONDS"] = "3600"

from drone_relay.core.config import Settings
from drone_relay.services.broadcaster import Broadcaster
from drone_relay.services.relay import RelayService


def make_response(status_code: int, body=None) -> MagicMock:
    """Fake httpx response carrying a status code and a JSON body."""
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    return response


@pytest.fixture
def settings():
    """Isolated settings with forwarding and background polling off."""
    return Settings(
        forwarding_enabled=False,
        order_poll_enabled=False,
        status_interval_seconds=3600,
        subscriber_queue_size=10,
    )


@pytest.fixture
def mock_http_client():
    """Stand-in for httpx.AsyncClient; every upstream call succeeds by default."""
    client = MagicMock()
    client.post = AsyncMock(return_value=make_response(200))
    client.get = AsyncMock(return_value=make_response(200, []))
    client.aclose = AsyncMock()
    return client


@pytest.fixture
async def broadcaster():
    """A running broadcaster with small subscriber queues."""
    broadcaster = Broadcaster(queue_size=10)
    await broadcaster.start()
    yield broadcaster
    await broadcaster.stop()


@pytest.fixture
async def relay(settings, mock_http_client):
    """A started relay wired to the mocked HTTP client."""
    relay = RelayService(settings, client=mock_http_client)
    await relay.initialize()
    yield relay
    await relay.shutdown()
