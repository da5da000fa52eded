import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from abstractions.load_balancer import LoadBalancer
from abstractions.registry import Registry
from algorithms.round_robin_load_balancer import RoundRobinLoadBalancer
from config.config import Config
from contracts.backend import Backend, DesiredState, Health
from contracts.probe_result import ProbeResult
from core.errors import DuplicateBackend, NoHealthyBackend, UnknownBackend
from core.metrics_manager import MetricsManager
from core.profiler import Profiler

logger = logging.getLogger(__name__)


class PoolManager(Registry):
    """
    Owns the pool of backends, their observed health and the selection cursor.

    Every read and read-modify-write goes through one lock that is held only for the
    in-memory update. Callers always receive copies of the backends.
    """

    def __init__(
        self,
        failure_threshold: Optional[int] = None,
        load_balancer: Optional[LoadBalancer] = None,
        metrics_manager: Optional[MetricsManager] = None,
    ):
        """
        Initialize the PoolManager.

        Args:
            failure_threshold (Optional[int]): Consecutive probe failures before a backend
                is condemned. Defaults to Config.FAILURE_THRESHOLD.
            load_balancer (Optional[LoadBalancer]): Selection policy. Defaults to round robin.
            metrics_manager (Optional[MetricsManager]): Receives the healthy backend count.
        """
        self.failure_threshold = failure_threshold or Config.FAILURE_THRESHOLD
        self._load_balancer = load_balancer or RoundRobinLoadBalancer()
        self.metrics_manager = metrics_manager
        self._backends: Dict[str, Backend] = {}  # id -> Backend, in registration order
        self._failures: Dict[str, int] = {}  # id -> consecutive probe failures
        self._lock = asyncio.Lock()
        self._any_healthy = asyncio.Event()
        logger.info(
            f"PoolManager initialized with failure_threshold={self.failure_threshold}"
        )

    def _get(self, backend_id: str) -> Backend:
        backend = self._backends.get(backend_id)
        if backend is None:
            raise UnknownBackend(f"Backend {backend_id} is not registered")
        return backend

    def _set_health(self, backend: Backend, health: Health):
        # Caller holds the lock
        if backend.observed_health != health:
            logger.info(
                f"Health transition: {backend.id} {backend.observed_health.value} -> {health.value}"
            )
            backend.observed_health = health
        self._refresh_healthy()

    def _refresh_healthy(self):
        healthy = sum(1 for b in self._backends.values() if b.is_healthy)
        if healthy:
            self._any_healthy.set()
        else:
            self._any_healthy.clear()
        if self.metrics_manager:
            self.metrics_manager.set_healthy_backends(healthy)

    async def register(self, backend: Backend) -> Backend:
        """
        Add a backend to the end of the pool.

        Args:
            backend (Backend): The backend to register.

        Returns:
            Backend: A copy of the registered backend.

        Raises:
            DuplicateBackend: If a backend with the same id is already registered.
        """
        async with self._lock:
            if backend.id in self._backends:
                raise DuplicateBackend(f"Backend {backend.id} is already registered")
            self._backends[backend.id] = backend.model_copy()
            self._failures[backend.id] = 0
            self._refresh_healthy()
            logger.info(f"Registered backend: {backend!r}")
            return backend.model_copy()

    async def unregister(self, backend_id: str) -> Backend:
        """
        Remove a backend and its failure counter from the pool.

        Args:
            backend_id (str): Id of the backend to remove.

        Returns:
            Backend: A copy of the removed backend.

        Raises:
            UnknownBackend: If no backend has this id.
        """
        async with self._lock:
            backend = self._get(backend_id)
            del self._backends[backend_id]
            self._failures.pop(backend_id, None)
            self._refresh_healthy()
            logger.info(f"Unregistered backend: {backend!r}")
            return backend.model_copy()

    async def mark(self, backend_id: str, healthy: bool) -> Health:
        """
        Set the observed health of a backend directly and reset its failure counter.

        Args:
            backend_id (str): Id of the backend.
            healthy (bool): True for healthy, False for unhealthy.

        Returns:
            Health: The observed health after the update.

        Raises:
            UnknownBackend: If no backend has this id.
        """
        async with self._lock:
            backend = self._get(backend_id)
            self._failures[backend_id] = 0
            self._set_health(backend, Health.HEALTHY if healthy else Health.UNHEALTHY)
            return backend.observed_health

    async def record(self, result: ProbeResult) -> Optional[Health]:
        """
        Apply the debounce rule: one success restores a backend immediately, while
        `failure_threshold` consecutive failures are needed to condemn it. Failures
        below the threshold leave the current health untouched.

        Args:
            result (ProbeResult): Outcome of one probe.

        Returns:
            Optional[Health]: The observed health after the update, or None if the
                backend is no longer registered.
        """
        async with self._lock:
            backend = self._backends.get(result.backend_id)
            if backend is None:
                logger.debug(f"Ignoring probe result for unregistered backend {result.backend_id}")
                return None
            if result.success:
                self._failures[backend.id] = 0
                self._set_health(backend, Health.HEALTHY)
            else:
                failures = self._failures.get(backend.id, 0) + 1
                self._failures[backend.id] = failures
                logger.warning(
                    f"Backend {backend.id} has {failures} consecutive probe failures"
                )
                if failures >= self.failure_threshold:
                    self._set_health(backend, Health.UNHEALTHY)
            return backend.observed_health

    @Profiler.profile
    async def select(self) -> Backend:
        """
        Select the next healthy backend in round-robin order.

        Returns:
            Backend: A copy of the selected backend.

        Raises:
            NoHealthyBackend: If no backend is currently healthy.
        """
        async with self._lock:
            backend = self._load_balancer.pick(list(self._backends.values()))
            if backend is None:
                raise NoHealthyBackend("No healthy backend available")
            return backend.model_copy()

    async def list_backends(self) -> List[Backend]:
        """
        List all registered backends.

        Returns:
            List[Backend]: Copies of the backends, in registration order.
        """
        async with self._lock:
            return [b.model_copy() for b in self._backends.values()]

    async def snapshot(self) -> List[Tuple[Backend, int]]:
        """
        Return each backend with its consecutive failure count, read under a single lock.
        """
        async with self._lock:
            return [
                (b.model_copy(), self._failures.get(b.id, 0))
                for b in self._backends.values()
            ]

    async def get(self, backend_id: str) -> Backend:
        """
        Return a copy of one backend.

        Raises:
            UnknownBackend: If no backend has this id.
        """
        async with self._lock:
            return self._get(backend_id).model_copy()

    async def healthy_count(self) -> int:
        """
        Return the number of backends currently observed healthy.
        """
        async with self._lock:
            return sum(1 for b in self._backends.values() if b.is_healthy)

    async def set_desired_state(self, backend_id: str, state: DesiredState) -> None:
        """
        Record what the supervisor wants the backend to be.

        Args:
            backend_id (str): Id of the backend.
            state (DesiredState): The desired state.

        Raises:
            UnknownBackend: If no backend has this id.
        """
        async with self._lock:
            backend = self._get(backend_id)
            if backend.desired_state != state:
                logger.info(f"Desired state of {backend_id}: {backend.desired_state.value} -> {state.value}")
            backend.desired_state = state

    async def reset_health(self, backend_id: str) -> None:
        """
        Forget everything observed about a backend, as after it was stopped.
        """
        async with self._lock:
            backend = self._get(backend_id)
            self._failures[backend_id] = 0
            self._set_health(backend, Health.UNKNOWN)

    async def wait_for_healthy(self) -> None:
        """
        Block until at least one backend is healthy.
        """
        await self._any_healthy.wait()
