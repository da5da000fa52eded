from abc import ABC, abstractmethod
from typing import Optional, Sequence

from contracts.backend import Backend


class LoadBalancer(ABC):
    """
    Abstract base class for backend selection policies. A policy is called by the pool
    while it holds its lock, so implementations must not await or block.
    """

    @abstractmethod
    def pick(self, backends: Sequence[Backend]) -> Optional[Backend]:
        """
        Choose the backend to route the next request to.

        Args:
            backends (Sequence[Backend]): All backends of the pool, in pool order.

        Returns:
            Optional[Backend]: The selected backend, or None if no backend is selectable.
        """
        pass
