"""
Relay service container.

Owns every piece of mutable relay state (the last-value caches, the
broadcaster's subscriber table, the forwarding queue) and their lifecycle.
One instance is created at process start by the FastAPI lifespan and handed
to request handlers through ``core.dependencies.get_relay``.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from .. import __version__
from ..core.background_tasks import BackgroundTaskManager
from ..core.config import Settings
from .broadcaster import Broadcaster
from .event_store import LastValueCache
from .forwarder import ForwardingWorker, UpstreamForwarder, resolve_endpoints
from .ingress import IngressAdapter

logger = logging.getLogger(__name__)


class RelayService:
    """
    Builds and wires the relay components.

    Args:
        settings: Service configuration
        client: Optional HTTP client for upstream calls. When omitted the
            service creates its own and closes it on shutdown.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.upstream_timeout_seconds)

        self.location_store = LastValueCache(
            maxsize=settings.location_cache_maxsize,
            ttl=settings.location_cache_ttl_seconds,
            name="locations",
        )
        self.simulation_store = LastValueCache(
            maxsize=settings.simulation_cache_maxsize,
            ttl=settings.simulation_cache_ttl_seconds,
            name="simulations",
        )
        self.order_store = LastValueCache(
            maxsize=settings.simulation_cache_maxsize,
            ttl=settings.simulation_cache_ttl_seconds,
            name="orders",
        )

        self.broadcaster = Broadcaster(queue_size=settings.subscriber_queue_size)

        self.forwarder = UpstreamForwarder(
            self.client,
            timeout=settings.upstream_timeout_seconds,
            user_agent=f"Drone-Relay-Service/{__version__}",
        )
        self.location_endpoints = resolve_endpoints(
            settings.upstream_base_url,
            settings.upstream_location_endpoint,
            settings.upstream_location_candidates,
        )
        self.order_endpoints = resolve_endpoints(
            settings.upstream_base_url,
            settings.upstream_orders_endpoint,
            settings.upstream_orders_candidates,
        )

        self.worker: Optional[ForwardingWorker] = None
        if settings.forwarding_enabled:
            self.worker = ForwardingWorker(
                self.forwarder,
                self.location_endpoints,
                timeout=settings.upstream_timeout_seconds,
                queue_size=settings.forward_queue_size,
            )

        self.ingress = IngressAdapter(
            location_store=self.location_store,
            simulation_store=self.simulation_store,
            order_store=self.order_store,
            broadcaster=self.broadcaster,
            worker=self.worker,
            settings=settings,
        )
        self.background_tasks = BackgroundTaskManager(self, settings)

    async def initialize(self) -> None:
        """Start the broadcaster, the forwarding worker and background tasks."""
        logger.info(f"Starting {self.settings.service_name}")

        await self.broadcaster.start()
        if self.worker:
            await self.worker.start()
        else:
            logger.info("Upstream forwarding disabled")
        await self.background_tasks.start()

        logger.info(f"{self.settings.service_name} ready on port {self.settings.service_port}")

    async def shutdown(self) -> None:
        logger.info(f"Shutting down {self.settings.service_name}")

        await self.background_tasks.stop()
        if self.worker:
            await self.worker.stop()
        await self.broadcaster.stop()

        if self._owns_client:
            await self.client.aclose()

        logger.info(f"{self.settings.service_name} shutdown complete")

    def forwarding_stats(self) -> Dict[str, Any]:
        if self.worker is None:
            return {"enabled": False}
        return {"enabled": True, **self.worker.stats()}
