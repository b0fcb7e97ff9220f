"""
Tests for upstream forwarding and polling.
"""
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from conftest import make_response
from drone_relay.services.forwarder import (
    ForwardingWorker,
    UpstreamForwarder,
    resolve_endpoints,
)

BASE = "http://upstream.test"


@pytest.fixture
def client():
    client = MagicMock()
    client.post = AsyncMock()
    client.get = AsyncMock()
    return client


class TestResolveEndpoints:
    """Tests for endpoint resolution."""

    def test_candidates_joined_to_base(self):
        endpoints = resolve_endpoints(f"{BASE}/", None, ["/a", "b"])
        assert endpoints == [f"{BASE}/a", f"{BASE}/b"]

    def test_explicit_replaces_candidates(self):
        endpoints = resolve_endpoints(BASE, "/only", ["/a", "/b"])
        assert endpoints == [f"{BASE}/only"]

    def test_absolute_url_kept(self):
        endpoints = resolve_endpoints(BASE, "https://other.test/hook", ["/a"])
        assert endpoints == ["https://other.test/hook"]


class TestUpstreamForwarder:
    """Tests for UpstreamForwarder.forward."""

    async def test_stops_at_first_success(self, client):
        """A timeout and a 404 are skipped; nothing after the 2xx is contacted."""
        client.post.side_effect = [
            make_response(404),
            httpx.ConnectTimeout("timed out"),
            make_response(201),
            make_response(200),
        ]
        forwarder = UpstreamForwarder(client, timeout=3.0)
        endpoints = ["http://a", "http://b", "http://c", "http://d"]

        result = await forwarder.forward({"entityId": "D1"}, endpoints)

        assert result.success is True
        assert result.endpoint == "http://c"
        assert result.attempts == 3
        assert client.post.await_count == 3
        called = [call.args[0] for call in client.post.await_args_list]
        assert called == ["http://a", "http://b", "http://c"]

    async def test_all_fail(self, client):
        client.post.side_effect = [make_response(500), httpx.ConnectError("refused")]
        forwarder = UpstreamForwarder(client)

        result = await forwarder.forward({"entityId": "D1"}, ["http://a", "http://b"])

        assert result.success is False
        assert result.attempts == 2
        assert "ConnectError" in result.error

    async def test_single_explicit_endpoint_tried_once(self, client):
        client.post.return_value = make_response(503)
        forwarder = UpstreamForwarder(client)
        endpoints = resolve_endpoints(BASE, "/hook", ["/a", "/b", "/c"])

        result = await forwarder.forward({"entityId": "D1"}, endpoints)

        assert result.success is False
        assert result.attempts == 1
        assert client.post.await_count == 1
        assert result.error == "HTTP 503"

    async def test_sends_json_with_timeout(self, client):
        client.post.return_value = make_response(200)
        forwarder = UpstreamForwarder(client, timeout=3.0, user_agent="test-agent")

        await forwarder.forward({"entityId": "D1"}, ["http://a"], timeout=1.5)

        kwargs = client.post.await_args.kwargs
        assert kwargs["json"] == {"entityId": "D1"}
        assert kwargs["timeout"] == 1.5
        assert kwargs["headers"]["User-Agent"] == "test-agent"


class TestPoll:
    """Tests for UpstreamForwarder.poll."""

    async def test_first_non_empty_list_wins(self, client):
        client.get.side_effect = [
            make_response(404),
            make_response(200, []),
            make_response(200, [{"id": "O1"}]),
            make_response(200, [{"id": "O2"}]),
        ]
        forwarder = UpstreamForwarder(client)

        result = await forwarder.poll(["http://a", "http://b", "http://c", "http://d"])

        assert result.success is True
        assert result.endpoint == "http://c"
        assert result.items == [{"id": "O1"}]
        assert client.get.await_count == 3

    async def test_non_list_body_is_not_success(self, client):
        client.get.return_value = make_response(200, {"orders": []})
        forwarder = UpstreamForwarder(client)

        result = await forwarder.poll(["http://a"])

        assert result.success is False
        assert result.items == []

    async def test_errors_are_not_raised(self, client):
        client.get.side_effect = httpx.ReadTimeout("slow")
        forwarder = UpstreamForwarder(client)

        result = await forwarder.poll(["http://a", "http://b"])

        assert result.success is False
        assert result.attempts == 2


class TestForwardingWorker:
    """Tests for the background forwarding worker."""

    async def test_delivers_submitted_jobs(self, client):
        client.post.return_value = make_response(200)
        worker = ForwardingWorker(UpstreamForwarder(client), ["http://a"], timeout=1.0)
        await worker.start()

        try:
            assert worker.submit({"entityId": "D1"}) is True
            await worker.join()
        finally:
            await worker.stop()

        assert worker.delivered == 1
        assert worker.failed == 0
        assert worker.stats()["lastEndpoint"] == "http://a"

    async def test_failed_forward_counted(self, client):
        client.post.side_effect = httpx.ConnectError("refused")
        worker = ForwardingWorker(UpstreamForwarder(client), ["http://a"])
        await worker.start()

        try:
            worker.submit({"entityId": "D1"})
            await worker.join()
        finally:
            await worker.stop()

        assert worker.failed == 1
        assert worker.delivered == 0

    def test_full_queue_drops(self, client):
        """submit never waits; overflow is counted and reported."""
        worker = ForwardingWorker(UpstreamForwarder(client), ["http://a"], queue_size=1)

        assert worker.submit({"n": 1}) is True
        assert worker.submit({"n": 2}) is False
        assert worker.dropped == 1
        assert worker.submitted == 1

    async def test_start_stop(self, client):
        worker = ForwardingWorker(UpstreamForwarder(client), ["http://a"])

        await worker.start()
        assert worker.is_running is True

        await worker.stop()
        assert worker.is_running is False
        assert worker.stats()["running"] is False
