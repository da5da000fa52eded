import asyncio
import logging
import os
from collections import deque
from typing import Iterable, List, Optional

import httpx

from abstractions.container_runtime import ContainerRuntime
from config.config import Config
from config.logging_config import LOG_FILE
from contracts.backend import Backend, BackendSpec, DesiredState, Health
from contracts.status import (
    BackendStatus,
    FailoverResult,
    LogsReport,
    RoutedRequest,
    RouterStatus,
    SelfTestReport,
    StatusReport,
    SupervisorState,
)
from core.app_server import AppServer
from core.errors import (
    BackendLaunchFailure,
    ContainerRuntimeError,
    StartupTimeout,
    SupervisorNotRunning,
    UnknownBackend,
)
from core.health_prober import HealthProber
from core.pool_manager import PoolManager

logger = logging.getLogger(__name__)

BACKEND_ID_HEADER = "X-Backend-Id"


def tail_log_file(path: str, tail: int) -> List[str]:
    """
    Return the last `tail` lines of a log file, or nothing if it does not exist.
    """
    if not os.path.exists(path):
        return []
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return [line.rstrip("\n") for line in deque(f, maxlen=tail)]


class Supervisor:
    """
    Top-level control loop of the service.

    Launches the configured backends through the container runtime, keeps the prober
    feeding the pool and runs the router in front of it. Lifecycle transitions are
    serialized by one lock, so concurrent start and stop commands never interleave.
    """

    def __init__(
        self,
        specs: Iterable[BackendSpec],
        pool: PoolManager,
        prober: HealthProber,
        runtime: ContainerRuntime,
        router_server: AppServer,
        start_timeout: Optional[float] = None,
        log_file: Optional[str] = None,
    ):
        self.specs = list(specs)
        self.pool = pool
        self.prober = prober
        self.runtime = runtime
        self.router_server = router_server
        self.start_timeout = start_timeout or Config.START_TIMEOUT_SECONDS
        self.log_file = log_file or LOG_FILE
        self._state = SupervisorState.STOPPED
        self._lifecycle_lock = asyncio.Lock()

    @property
    def state(self) -> SupervisorState:
        return self._state

    async def setup(self):
        """
        Register the configured backends with the pool. Safe to call more than once.
        """
        known = {b.id for b in await self.pool.list_backends()}
        for spec in self.specs:
            if spec.id not in known:
                await self.pool.register(Backend.from_spec(spec))

    async def start(self) -> SupervisorState:
        async with self._lifecycle_lock:
            await self._start_locked()
        return self._state

    async def stop(self) -> SupervisorState:
        async with self._lifecycle_lock:
            await self._stop_locked()
        return self._state

    async def restart(self) -> SupervisorState:
        logger.info("Restarting service...")
        async with self._lifecycle_lock:
            await self._stop_locked()
            await self._start_locked()
        return self._state

    async def shutdown(self):
        """
        Stop the service and drop every backend from the pool.
        """
        async with self._lifecycle_lock:
            await self._stop_locked()
            for backend in await self.pool.list_backends():
                await self.pool.unregister(backend.id)
        logger.info("Supervisor shut down.")

    async def _start_locked(self):
        if self._state == SupervisorState.RUNNING:
            logger.info("Service already running.")
            return

        logger.info("Starting service...")
        self._state = SupervisorState.STARTING
        try:
            backends = await self.pool.list_backends()
            launched = await asyncio.gather(*(self._launch(b) for b in backends))
            logger.info(f"Launched {sum(launched)}/{len(backends)} backends")

            self.prober.start(backends)
            await self.router_server.start()

            try:
                await asyncio.wait_for(
                    self.pool.wait_for_healthy(), timeout=self.start_timeout
                )
            except asyncio.TimeoutError:
                raise StartupTimeout(
                    f"No backend became healthy within {self.start_timeout}s"
                ) from None
        except Exception:
            logger.exception("Service failed to start, tearing down")
            await self._teardown()
            self._state = SupervisorState.STOPPED
            raise

        self._state = SupervisorState.RUNNING
        logger.info(
            f"Service started; router available at {self.router_server.local_url}"
        )

    async def _launch(self, backend: Backend) -> bool:
        await self.pool.set_desired_state(backend.id, DesiredState.UP)
        try:
            action = await self.runtime.ensure_running(backend)
        except BackendLaunchFailure as e:
            logger.error(str(e))
            return False
        logger.info(f"Backend {backend.id}: {action}")
        return True

    async def _stop_locked(self):
        if self._state == SupervisorState.STOPPED:
            logger.info("Service already stopped.")
            return
        logger.info("Stopping service...")
        self._state = SupervisorState.STOPPING
        await self._teardown()
        self._state = SupervisorState.STOPPED
        logger.info("Service stopped.")

    async def _teardown(self):
        await self.router_server.stop()
        await self.prober.stop()
        for backend in await self.pool.list_backends():
            await self.pool.set_desired_state(backend.id, DesiredState.DOWN)
            try:
                await self.runtime.stop(backend.id)
            except ContainerRuntimeError as e:
                logger.error(f"Failed to stop backend {backend.id}: {e}")
            await self.pool.reset_health(backend.id)

    async def _runtime_status(self, backend_id: str) -> str:
        try:
            return await self.runtime.status(backend_id)
        except ContainerRuntimeError as e:
            logger.warning(str(e))
            return "unavailable"

    async def _router_reachable(self) -> bool:
        if not self.router_server.running:
            return False
        try:
            async with httpx.AsyncClient(timeout=2.0) as client:
                await client.get(f"{self.router_server.local_url}/")
            return True
        except httpx.HTTPError:
            return False

    async def status(self) -> StatusReport:
        """
        Take a read-only snapshot of the service. Nothing is started, stopped or marked.
        """
        state = self._state
        snapshot = await self.pool.snapshot()
        runtime_statuses = await asyncio.gather(
            *(self._runtime_status(b.id) for b, _ in snapshot)
        )
        backends = [
            BackendStatus(
                id=b.id,
                address=b.address,
                port=b.port,
                desired_state=b.desired_state,
                observed_health=b.observed_health,
                consecutive_failures=failures,
                runtime_status=runtime_status,
            )
            for (b, failures), runtime_status in zip(snapshot, runtime_statuses)
        ]
        router = RouterStatus(
            host=self.router_server.host,
            port=self.router_server.port,
            running=self.router_server.running,
            reachable=await self._router_reachable(),
        )
        return StatusReport(state=state, backends=backends, router=router)

    async def logs(self, tail: int = 5) -> LogsReport:
        report = LogsReport(supervisor=tail_log_file(self.log_file, tail))
        for backend in await self.pool.list_backends():
            try:
                report.backends[backend.id] = await self.runtime.logs(backend.id, tail)
            except ContainerRuntimeError as e:
                report.backends[backend.id] = f"Logs not available: {e}"
        return report

    async def _route_once(self, client: httpx.AsyncClient, attempt: int) -> RoutedRequest:
        try:
            resp = await client.get(f"{self.router_server.local_url}/")
        except httpx.HTTPError as e:
            return RoutedRequest(attempt=attempt, error=f"{type(e).__name__}: {e}")
        return RoutedRequest(
            attempt=attempt,
            status_code=resp.status_code,
            backend_id=resp.headers.get(BACKEND_ID_HEADER),
        )

    async def _wait_for_health(self, backend_id: str, health: Health, timeout: float) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            try:
                backend = await self.pool.get(backend_id)
            except UnknownBackend:
                return False
            if backend.observed_health == health:
                return True
            await asyncio.sleep(min(0.1, self.prober.interval))
        return False

    async def self_test(
        self, requests: int = 5, failover: bool = True, pause: float = 0.5
    ) -> SelfTestReport:
        """
        Exercise the running service end to end.

        Sends `requests` requests through the router and reports who served each of them.
        The failover check then stops the first backend, waits until the prober condemns
        it, sends one more request (which another backend must serve) and starts the
        backend again.
        """
        async with self._lifecycle_lock:
            if self._state != SupervisorState.RUNNING:
                raise SupervisorNotRunning("The service must be running to be tested")

            report = SelfTestReport()
            async with httpx.AsyncClient(timeout=Config.FORWARD_TIMEOUT_SECONDS) as client:
                for attempt in range(1, requests + 1):
                    report.requests.append(await self._route_once(client, attempt))
                    if attempt < requests:
                        await asyncio.sleep(pause)

                backends = await self.pool.list_backends()
                if failover and len(backends) > 1:
                    report.failover = await self._failover_check(client, backends[0])
            return report

    async def _failover_check(self, client: httpx.AsyncClient, victim: Backend) -> FailoverResult:
        logger.info(f"Failover test: stopping backend {victim.id}")
        await self.runtime.stop(victim.id)
        try:
            condemn_within = (
                self.prober.interval + self.prober.timeout
            ) * (self.pool.failure_threshold + 1)
            condemned = await self._wait_for_health(
                victim.id, Health.UNHEALTHY, condemn_within
            )
            routed = await self._route_once(client, 1)
            return FailoverResult(
                stopped_backend=victim.id,
                condemned=condemned,
                status_code=routed.status_code,
                served_by=routed.backend_id,
                error=routed.error,
            )
        finally:
            logger.info(f"Failover test: starting backend {victim.id} again")
            try:
                await self.runtime.ensure_running(victim)
            except BackendLaunchFailure as e:
                logger.error(str(e))
