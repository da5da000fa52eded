import logging
import time
from typing import Optional

import httpx
from fastapi import Request, Response

from abstractions.registry import Registry
from config.config import Config
from core.errors import NoHealthyBackend
from core.metrics_manager import MetricsManager
from core.profiler import Profiler

logger = logging.getLogger(__name__)

# Connection-level headers that must not be passed through a proxy
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

# httpx decodes the body, so these no longer describe what we send back
STRIPPED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | {"content-encoding", "content-length"}


class Router:
    """
    Forwards each request to one backend chosen by the pool and relays the answer.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        registry: Registry,
        forward_timeout: Optional[float] = None,
        metrics_manager: Optional[MetricsManager] = None,
    ):
        self.client = client
        self.registry = registry
        self.forward_timeout = forward_timeout or Config.FORWARD_TIMEOUT_SECONDS
        self.metrics_manager = metrics_manager

    @staticmethod
    def _upstream_path(request: Request, path: str) -> str:
        # raw_path keeps percent-escapes such as %2F and %3F intact
        raw_path = request.scope.get("raw_path")
        if raw_path:
            return raw_path.decode("latin-1")
        return f"/{path.lstrip('/')}"

    @Profiler.profile
    async def handle(self, request: Request, path: str) -> Response:
        """
        Proxy an incoming HTTP request to the next healthy backend.

        A request gets exactly one selection and at most one forward: there is no retry
        on another backend when the chosen one fails.

        Args:
            request (Request): The incoming request.
            path (str): The path to append to the backend URL.

        Returns:
            Response: The backend's response, 503 if no backend is healthy, 502 on an
                upstream connection error or 504 on an upstream timeout.
        """
        try:
            backend = await self.registry.select()
        except NoHealthyBackend:
            logger.error("No healthy backend available. Returning 503.")
            if self.metrics_manager:
                self.metrics_manager.record_no_healthy_backend()
            return Response(content="No healthy backend available.", status_code=503)

        url = f"{backend.url}{self._upstream_path(request, path)}"
        method = request.method
        # A list keeps repeated headers apart
        headers = []
        for k, v in request.headers.raw:
            name = k.decode("latin-1")
            if name.lower() in HOP_BY_HOP_HEADERS or name.lower() == "host":
                continue
            headers.append((name, v.decode("latin-1")))
        body = await request.body()
        logger.info(f"Proxying {method} request to {backend.id} at {url}")

        started = time.perf_counter()
        try:
            resp = await self.client.request(
                method,
                url,
                headers=headers,
                content=body,
                params=request.query_params,
                timeout=httpx.Timeout(self.forward_timeout),
            )
        except httpx.TimeoutException as e:
            logger.error(f"Upstream timeout from {backend.id}", exc_info=e)
            if self.metrics_manager:
                self.metrics_manager.record_upstream_error(backend.id, "timeout")
            return Response(content=f"Upstream timeout: {e}", status_code=504)
        except httpx.RequestError as e:
            logger.error(f"Upstream request error from {backend.id}", exc_info=e)
            if self.metrics_manager:
                self.metrics_manager.record_upstream_error(backend.id, "request")
            return Response(content=f"Upstream error: {e!r}", status_code=502)

        logger.info(f"Received response from {backend.id}: {resp.status_code}")
        if self.metrics_manager:
            self.metrics_manager.record_route(
                backend.id, resp.status_code, time.perf_counter() - started
            )

        response = Response(content=resp.content, status_code=resp.status_code)
        for k, v in resp.headers.multi_items():
            if k.lower() not in STRIPPED_RESPONSE_HEADERS:
                response.headers.append(k, v)
        return response
