import asyncio
import functools
import logging
from typing import Dict, Iterable, List, Optional

import httpx

from abstractions.registry import Registry
from config.config import Config
from contracts.backend import Backend
from contracts.probe_result import ProbeResult
from core.errors import ProbeTimeout
from core.metrics_manager import MetricsManager
from core.profiler import Profiler
from core.ticker import Ticker

logger = logging.getLogger(__name__)


class HealthProber:
    """
    Probes every backend on its own ticker and feeds the results to the pool.
    """

    def __init__(
        self,
        registry: Registry,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        probe_path: Optional[str] = None,
        metrics_manager: Optional[MetricsManager] = None,
    ):
        self.registry = registry
        self.interval = interval or Config.PROBE_INTERVAL_SECONDS
        self.timeout = timeout or Config.PROBE_TIMEOUT_SECONDS
        self.probe_path = probe_path or Config.PROBE_PATH
        self.metrics_manager = metrics_manager
        self._tickers: Dict[str, Ticker] = {}  # backend id -> Ticker

    @property
    def probing(self) -> List[str]:
        return [backend_id for backend_id, t in self._tickers.items() if t.running]

    async def _get_status(self, backend: Backend) -> int:
        url = f"{backend.url}{self.probe_path}"
        try:
            async with httpx.AsyncClient() as client:
                # wait_for cancels the request once the deadline passes
                resp = await asyncio.wait_for(
                    client.get(url, follow_redirects=False), timeout=self.timeout
                )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise ProbeTimeout(f"Probe to {url} timed out after {self.timeout}s") from e
        return resp.status_code

    @Profiler.profile
    async def probe(self, backend: Backend) -> ProbeResult:
        """
        Run one liveness check and hand its result to the pool.

        Any 2xx or 3xx answer within the timeout is a success. Timeouts, connection
        errors and every other status are failures.
        """
        try:
            status_code = await self._get_status(backend)
            success = 200 <= status_code < 400
            detail = f"HTTP {status_code}"
        except ProbeTimeout as e:
            success, detail = False, str(e)
        except httpx.HTTPError as e:
            success, detail = False, f"{type(e).__name__}: {e}"

        result = ProbeResult(backend_id=backend.id, success=success, detail=detail)
        if success:
            logger.debug(f"Probe success for {backend.id}: {detail}")
        else:
            logger.warning(f"Probe failed for {backend.id}: {detail}")
        if self.metrics_manager:
            self.metrics_manager.record_probe(result)
        await self.registry.record(result)
        return result

    def start(self, backends: Iterable[Backend]):
        """
        Start one probing ticker per backend. Backends already probed are left alone.
        """
        for backend in backends:
            ticker = self._tickers.get(backend.id)
            if ticker is None:
                ticker = Ticker(
                    backend.id, self.interval, functools.partial(self.probe, backend)
                )
                self._tickers[backend.id] = ticker
            ticker.start()
        logger.info(f"Probing backends: {self.probing}")

    async def stop(self):
        tickers = list(self._tickers.values())
        self._tickers.clear()
        await asyncio.gather(*(t.stop() for t in tickers))
        logger.info("Probing stopped.")
