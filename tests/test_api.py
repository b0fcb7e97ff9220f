"""
Tests for the Drone Relay Service API endpoints.
"""
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from drone_relay.main import app
from drone_relay.services.forwarder import PollResult

LOCATION = {"entityId": "D1", "latitude": 10.0, "longitude": 20.0, "capacityMetric": 80}
SIMULATION = {
    "drone": {"serialNumber": "DRN-1", "latitude": 51.5, "longitude": -0.12, "batteryCapacity": 90},
    "order": {"_id": "O1", "item": "parcel"},
}


@pytest.fixture
def client():
    """Test client with the lifespan running, so each test gets a fresh relay."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def relay(client):
    return app.state.relay


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["broadcasterRunning"] is True
        assert data["connectedClients"] == 0
        assert data["forwarding"] == {"enabled": False}

    def test_health_degraded(self, client, relay):
        relay.broadcaster._running = False
        data = client.get("/health").json()
        assert data["status"] == "degraded"


class TestRootEndpoint:
    """Tests for root info endpoint."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["service"] == "drone-relay-service"
        assert "version" in data


class TestLocationEndpoints:
    """Tests for location ingest and lookup."""

    def test_post_location(self, client):
        response = client.post("/api/drones/location", json=LOCATION)
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["broadcasted"] is True
        assert data["data"]["entityId"] == "D1"
        assert data["data"]["derivedStatus"] == "active"

    def test_legacy_path(self, client):
        response = client.post("/location", json=LOCATION)
        assert response.status_code == 200
        assert client.get("/api/drones/location/D1").status_code == 200

    def test_post_location_invalid(self, client):
        response = client.post("/api/drones/location", json={"entityId": "D1", "longitude": 20})
        assert response.status_code == 400

        detail = response.json()["detail"]
        assert detail["error"] == "Missing or invalid location fields"
        fields = {err["field"] for err in detail["details"]}
        assert {"latitude", "capacityMetric"} <= fields

    def test_get_location(self, client):
        client.post("/api/drones/location", json=LOCATION)

        response = client.get("/api/drones/location/D1")
        assert response.status_code == 200
        data = response.json()
        assert data["entityId"] == "D1"
        assert data["location"]["latitude"] == 10.0
        assert "storedAt" in data

    def test_get_location_unknown(self, client):
        assert client.get("/api/drones/location/nope").status_code == 404

    def test_active_and_stats(self, client):
        client.post("/api/drones/location", json=LOCATION)
        client.post("/api/drones/location", json={**LOCATION, "entityId": "D2"})
        client.post("/api/drones/location", json={"entityId": "D3"})

        active = client.get("/api/drones/active").json()
        assert active["count"] == 2
        assert {d["entityId"] for d in active["drones"]} == {"D1", "D2"}

        stats = client.get("/api/drones/stats").json()["stats"]
        assert stats["totalLocationUpdates"] == 2
        assert stats["rejectedLocationUpdates"] == 1
        assert stats["uniqueDrones"] == 2
        assert stats["activeDrones"] == 2


class TestBroadcastEndpoints:
    """Tests for the data-provider broadcast endpoints."""

    def test_broadcast_simulation(self, client, relay):
        response = client.post("/api/broadcast/simulation", json={"data": {"order": {"_id": "O1"}}})
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["clientsNotified"] == 0
        assert relay.simulation_store.get("O1") is not None

    def test_broadcast_order(self, client, relay):
        response = client.post("/api/broadcast/order", json={"data": {"orderId": "O7"}})
        assert response.status_code == 200
        assert relay.order_store.get("O7") is not None

    def test_broadcast_missing_data(self, client):
        response = client.post("/api/broadcast/simulation", json={"timestamp": "now"})
        assert response.status_code == 400

    def test_broadcast_unknown_kind(self, client):
        response = client.post("/api/broadcast/weather", json={"data": {}})
        assert response.status_code == 404

    def test_broadcast_custom(self, client):
        response = client.post("/api/broadcast/custom", json={
            "event": "maintenance",
            "room": "all_drones",
            "data": {"window": "02:00"},
        })
        assert response.status_code == 200
        assert response.json()["room"] == "all_drones"

    def test_broadcast_custom_requires_room(self, client):
        response = client.post("/api/broadcast/custom", json={"event": "x", "data": {}})
        assert response.status_code == 400

    def test_broadcast_unavailable(self, client, relay):
        relay.broadcaster._running = False

        response = client.post("/api/broadcast/simulation", json={"data": {"order": {"_id": "O1"}}})

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "WebSocket service not available"
        # Still stored for later lookup
        assert relay.simulation_store.get("O1") is not None

    def test_broadcast_status(self, client):
        data = client.get("/api/broadcast/status").json()
        assert data["status"] == "available"
        assert data["connectedClients"] == 0


class TestSimulationEndpoints:
    """Tests for simulation intake and lookup."""

    def test_latest_simulation_empty(self, client):
        assert client.get("/api/simulation").status_code == 404

    def test_post_and_get_simulation(self, client):
        response = client.post("/api/simulation", json=SIMULATION)
        assert response.status_code == 200
        assert response.json()["orderId"] == "O1"

        latest = client.get("/api/simulation").json()
        assert latest["order"]["_id"] == "O1"

    def test_post_simulation_invalid(self, client):
        response = client.post("/api/simulation", json={"drone": {}})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "Invalid simulation data format"

    def test_active_simulations(self, client):
        client.post("/api/simulation", json=SIMULATION)
        client.post("/api/simulation", json={**SIMULATION, "order": {"_id": "O2"}})

        data = client.get("/api/simulations/active").json()
        assert data["count"] == 2
        assert {s["orderId"] for s in data["simulations"]} == {"O1", "O2"}

    def test_start_simulation(self, client):
        client.post("/api/simulation", json=SIMULATION)

        response = client.post("/api/simulation/O1/start")
        assert response.status_code == 200

        initial = response.json()["initialLocation"]
        assert initial["entityId"] == "DRN-1"
        assert initial["latitude"] == 51.5
        assert initial["capacityMetric"] == 90
        assert client.get("/api/drones/location/DRN-1").status_code == 200

    def test_start_simulation_defaults(self, client):
        client.post("/api/simulation", json={"drone": {"serialNumber": "DRN-2"}, "order": {"_id": "O9"}})

        initial = client.post("/api/simulation/O9/start").json()["initialLocation"]
        assert initial["latitude"] == 0
        assert initial["longitude"] == 0
        assert initial["capacityMetric"] == 100

    def test_start_unknown_simulation(self, client):
        assert client.post("/api/simulation/missing/start").status_code == 404

    def test_order_lookup(self, client):
        client.post("/api/broadcast/order", json={"data": {"orderId": "O7", "status": "pending"}})

        response = client.get("/api/orders/O7")
        assert response.status_code == 200
        data = response.json()
        assert data["orderId"] == "O7"
        assert data["data"]["status"] == "pending"
        assert "receivedAt" in data

        listing = client.get("/api/orders").json()
        assert listing["count"] == 1
        assert listing["orders"][0]["orderId"] == "O7"

    def test_order_lookup_unknown(self, client):
        assert client.get("/api/orders/missing").status_code == 404

    def test_external_poll(self, client, relay):
        relay.forwarder.poll = AsyncMock(return_value=PollResult(
            success=True,
            endpoint="http://upstream.test/orders",
            items=[{"id": "O42"}],
        ))

        response = client.post("/api/external/poll")

        assert response.status_code == 200
        assert response.json()["ordersRelayed"] == 1
        assert relay.order_store.get("O42") is not None


class TestAdminAndStream:
    """Tests for admin listing and stream validation."""

    def test_connections_empty(self, client):
        data = client.get("/v1/admin/connections").json()
        assert data["count"] == 0
        assert data["connections"] == []

    def test_stream_requires_topics(self, client):
        response = client.get("/v1/events/stream", params={"topics": " , "})
        assert response.status_code == 400

    def test_stream_unavailable(self, client, relay):
        relay.broadcaster._running = False
        response = client.get("/v1/events/stream", params={"topics": "all_drones"})
        assert response.status_code == 503


@pytest.mark.asyncio
async def test_relay_missing_returns_503():
    """Without the lifespan there is no relay to serve requests."""
    app.state.relay = None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/health")
    assert response.status_code == 503
