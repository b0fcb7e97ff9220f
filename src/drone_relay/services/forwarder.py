"""
Best-effort delivery of location updates to the upstream server.

The upstream URL layout is not known in advance, so delivery walks an ordered
list of candidate endpoints and stops at the first one that accepts the
request. When a single endpoint is configured explicitly, only that endpoint
is tried and a failure is reported once.

Nothing in this module raises to its caller. Outcomes are returned as
``ForwardResult`` / ``PollResult`` and logged.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx

logger = logging.getLogger(__name__)


@dataclass
class ForwardResult:
    success: bool
    endpoint: Optional[str] = None
    attempts: int = 0
    error: Optional[str] = None


@dataclass
class PollResult:
    success: bool
    endpoint: Optional[str] = None
    items: List[Dict[str, Any]] = field(default_factory=list)
    attempts: int = 0
    error: Optional[str] = None


def resolve_endpoints(
    base_url: str,
    explicit: Optional[str],
    candidates: Sequence[str],
) -> List[str]:
    """
    Build the ordered list of URLs to try.

    An explicit endpoint replaces the candidate list entirely. Absolute URLs
    are kept as-is, paths are joined onto ``base_url``.
    """
    paths = [explicit] if explicit else list(candidates)
    return [_join(base_url, path) for path in paths]


def _join(base_url: str, path: str) -> str:
    if path.startswith("http://") or path.startswith("https://"):
        return path
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{base_url.rstrip('/')}{path}"


def _is_success(response: Any) -> bool:
    return 200 <= response.status_code < 300


class UpstreamForwarder:
    """
    Tries candidate endpoints in order until one succeeds.

    Attributes:
        client: Shared ``httpx.AsyncClient`` (or a compatible mock)
        timeout: Default per-attempt timeout in seconds
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float = 3.0,
        user_agent: str = "Drone-Relay-Service/0.1.0",
    ):
        self.client = client
        self.timeout = timeout
        self.headers = {
            "Content-Type": "application/json",
            "User-Agent": user_agent,
        }

    async def forward(
        self,
        payload: Dict[str, Any],
        endpoints: Sequence[str],
        timeout: Optional[float] = None,
    ) -> ForwardResult:
        """
        POST ``payload`` to each endpoint in order, stopping at the first 2xx.

        Timeouts, connection errors and non-2xx responses move on to the next
        candidate. No endpoint after the successful one is contacted.
        """
        attempt_timeout = timeout if timeout is not None else self.timeout
        attempts = 0
        last_error: Optional[str] = None

        for endpoint in endpoints:
            attempts += 1
            try:
                response = await self.client.post(
                    endpoint,
                    json=payload,
                    headers=self.headers,
                    timeout=attempt_timeout,
                )
            except Exception as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.debug(f"Forward to {endpoint} failed: {last_error}")
                continue

            if _is_success(response):
                logger.info(f"Sent location to upstream server: {endpoint}")
                return ForwardResult(success=True, endpoint=endpoint, attempts=attempts)

            last_error = f"HTTP {response.status_code}"
            logger.debug(f"Forward to {endpoint} rejected: {last_error}")

        if len(endpoints) == 1:
            logger.warning(
                f"Failed to send location to configured upstream endpoint {endpoints[0]}: {last_error}"
            )
        else:
            logger.warning(
                f"Failed to send location upstream - no working endpoints after trying {attempts}"
            )
        return ForwardResult(success=False, attempts=attempts, error=last_error)

    async def poll(
        self,
        endpoints: Sequence[str],
        timeout: Optional[float] = None,
    ) -> PollResult:
        """
        GET each endpoint in order until one returns a non-empty JSON list.
        """
        attempt_timeout = timeout if timeout is not None else self.timeout
        attempts = 0
        last_error: Optional[str] = None

        for endpoint in endpoints:
            attempts += 1
            try:
                response = await self.client.get(
                    endpoint,
                    headers={"Accept": "application/json", **self.headers},
                    timeout=attempt_timeout,
                )
                if not _is_success(response):
                    last_error = f"HTTP {response.status_code}"
                    continue
                body = response.json()
            except Exception as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.debug(f"Poll of {endpoint} failed: {last_error}")
                continue

            if isinstance(body, list) and body:
                logger.info(f"Found {len(body)} orders at {endpoint}")
                return PollResult(success=True, endpoint=endpoint, items=body, attempts=attempts)

            last_error = "empty response"

        logger.debug(f"No orders found upstream after {attempts} attempt(s)")
        return PollResult(success=False, attempts=attempts, error=last_error)


class ForwardingWorker:
    """
    Background worker that drains forward jobs from a bounded queue.

    Ingress hands jobs over with ``submit()``, which never waits; the worker
    task performs the upstream calls with its own timeout policy, independent
    of the request that produced the job.
    """

    def __init__(
        self,
        forwarder: UpstreamForwarder,
        endpoints: Sequence[str],
        timeout: Optional[float] = None,
        queue_size: int = 1000,
    ):
        self.forwarder = forwarder
        self.endpoints = list(endpoints)
        self.timeout = timeout
        self.queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue(maxsize=queue_size)
        self._task: Optional[asyncio.Task] = None
        self._running = False

        self.submitted = 0
        self.delivered = 0
        self.failed = 0
        self.dropped = 0
        self.last_result: Optional[ForwardResult] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("Forwarding worker is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Forwarding worker started ({len(self.endpoints)} candidate endpoint(s))")

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        pending = self.queue.qsize()
        if pending:
            logger.info(f"Forwarding worker stopped with {pending} pending job(s)")
        else:
            logger.info("Forwarding worker stopped")

    def submit(self, payload: Dict[str, Any]) -> bool:
        """Queue a payload for forwarding. Returns False if it was dropped."""
        try:
            self.queue.put_nowait(payload)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Forward queue full, dropping location update")
            return False

        self.submitted += 1
        return True

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self.queue.join()

    def stats(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "pending": self.queue.qsize(),
            "submitted": self.submitted,
            "delivered": self.delivered,
            "failed": self.failed,
            "dropped": self.dropped,
            "lastEndpoint": self.last_result.endpoint if self.last_result else None,
        }

    async def _run(self) -> None:
        while self._running:
            payload = await self.queue.get()
            try:
                result = await self.forwarder.forward(payload, self.endpoints, self.timeout)
                self.last_result = result
                if result.success:
                    self.delivered += 1
                else:
                    self.failed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed += 1
                logger.error(f"Error in forwarding worker: {e}", exc_info=True)
            finally:
                self.queue.task_done()
