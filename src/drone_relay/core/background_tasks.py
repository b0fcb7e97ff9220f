"""
Background tasks for periodic relay activity.

- Status heartbeat: broadcasts ``systemStatus`` with the subscriber count to
  every connection on a fixed interval.
- Order polling (optional): asks the upstream server for pending orders and
  relays each one to order subscribers.
"""
import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from .config import Settings
from .errors import BroadcastUnavailableError, IngressValidationError

if TYPE_CHECKING:
    from ..services.relay import RelayService

logger = logging.getLogger(__name__)


class BackgroundTaskManager:
    """Manages background tasks for the relay."""

    def __init__(self, relay: "RelayService", settings: Settings):
        self.relay = relay
        self.settings = settings
        self._status_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._running = False

    async def start(self):
        """Start all background tasks."""
        if self._running:
            logger.warning("Background tasks are already running")
            return

        self._running = True
        self._status_task = asyncio.create_task(self._status_loop())
        if self.settings.order_poll_enabled:
            self._poll_task = asyncio.create_task(self._order_poll_loop())
        logger.info("Background tasks started")

    async def stop(self):
        """Stop all background tasks."""
        if not self._running:
            return

        self._running = False

        for task in (self._status_task, self._poll_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._status_task = None
        self._poll_task = None

        logger.info("Background tasks stopped")

    async def _status_loop(self):
        """
        Periodic liveness signal, independent of any relayed event.
        Runs every STATUS_INTERVAL_SECONDS.
        """
        interval = self.settings.status_interval_seconds
        logger.info(f"Starting status heartbeat (interval: {interval}s)")

        while self._running:
            try:
                await asyncio.sleep(interval)

                if not self._running:
                    break

                notified = await self.relay.broadcaster.publish_status()
                logger.debug(f"System status sent to {notified} client(s)")

            except asyncio.CancelledError:
                logger.info("Status heartbeat cancelled")
                break
            except BroadcastUnavailableError:
                logger.debug("Broadcaster unavailable, skipping status heartbeat")
            except Exception as e:
                logger.error(f"Error in status heartbeat: {e}", exc_info=True)
                # Continue running despite errors

    async def _order_poll_loop(self):
        """
        Periodic poll of the upstream server for pending orders.
        Runs every ORDER_POLL_INTERVAL_SECONDS.
        """
        interval = self.settings.order_poll_interval_seconds
        logger.info(f"Starting upstream order polling (interval: {interval}s)")

        while self._running:
            try:
                await asyncio.sleep(interval)

                if not self._running:
                    break

                await self.poll_orders_once()

            except asyncio.CancelledError:
                logger.info("Order polling cancelled")
                break
            except Exception as e:
                logger.error(f"Error in order polling: {e}", exc_info=True)

    async def poll_orders_once(self) -> int:
        """Poll the upstream server once and relay every order found."""
        # Import here to avoid circular imports
        from ..services.ingress import IngressSource

        result = await self.relay.forwarder.poll(
            self.relay.order_endpoints,
            timeout=self.settings.order_poll_timeout_seconds,
        )
        if not result.success:
            return 0

        relayed = 0
        for order in result.items:
            if not isinstance(order, dict):
                logger.warning(f"Skipping malformed upstream order: {order!r}")
                continue

            order_id = order.get("id") or order.get("_id")
            try:
                await self.relay.ingress.ingest_order(IngressSource.RELAYED, {
                    "data": {
                        "type": "external_order",
                        "order": order,
                        "message": f"New order received from upstream server: {order_id}",
                        "source": "external_server",
                    },
                })
                relayed += 1
            except IngressValidationError as e:
                logger.warning(f"Rejected upstream order {order_id}: {e.message}")

        logger.info(f"Relayed {relayed} upstream order(s) from {result.endpoint}")
        return relayed
