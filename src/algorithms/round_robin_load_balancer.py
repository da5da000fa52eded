import logging
from typing import Optional, Sequence

from abstractions.load_balancer import LoadBalancer
from contracts.backend import Backend

logger = logging.getLogger(__name__)


class RoundRobinLoadBalancer(LoadBalancer):
    """
    Load balancer that selects healthy backends in a round-robin fashion.

    The cursor points at the pool position right after the last selected backend, so
    repeated calls cycle through the healthy backends in pool order and skip the
    unhealthy ones without losing their turn order.
    """

    def __init__(self):
        self._cursor = 0
        logger.info("RoundRobinLoadBalancer initialized.")

    def pick(self, backends: Sequence[Backend]) -> Optional[Backend]:
        """
        Select the next healthy backend at or after the cursor.

        Args:
            backends (Sequence[Backend]): All backends of the pool, in pool order.

        Returns:
            Optional[Backend]: The selected backend, or None if no backend is healthy.
        """
        count = len(backends)
        for offset in range(count):
            index = (self._cursor + offset) % count
            backend = backends[index]
            if backend.is_healthy:
                self._cursor = (index + 1) % count
                logger.debug(f"Selected backend (round robin): {backend.id}")
                return backend
        logger.warning("No healthy backends available for round robin.")
        return None
