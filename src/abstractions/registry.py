from abc import ABC, abstractmethod
from typing import List, Optional

from contracts.backend import Backend, DesiredState, Health
from contracts.probe_result import ProbeResult


class Registry(ABC):
    """
    Abstract base class for the backend pool.
    """

    @abstractmethod
    async def register(self, backend: Backend) -> Backend:
        """
        Add a backend to the pool.

        Args:
            backend (Backend): The backend to register. Its id must not be registered yet.

        Returns:
            Backend: A copy of the registered backend.
        """

    @abstractmethod
    async def unregister(self, backend_id: str) -> Backend:
        """
        Remove a backend from the pool.

        Args:
            backend_id (str): Id of the backend to remove.

        Returns:
            Backend: A copy of the removed backend.
        """

    @abstractmethod
    async def mark(self, backend_id: str, healthy: bool) -> Health:
        """
        Set the observed health of a backend directly, bypassing the debounce rule.

        Args:
            backend_id (str): Id of the backend.
            healthy (bool): New health flag.

        Returns:
            Health: The observed health after the update.
        """

    @abstractmethod
    async def record(self, result: ProbeResult) -> Optional[Health]:
        """
        Fold a probe result into the backend's observed health using the debounce rule.

        Args:
            result (ProbeResult): The probe outcome.

        Returns:
            Optional[Health]: The observed health after the update, or None if the backend
                is no longer registered.
        """

    @abstractmethod
    async def select(self) -> Backend:
        """
        Select the backend for the next request.

        Returns:
            Backend: A copy of a healthy backend.

        Raises:
            NoHealthyBackend: If no backend is healthy.
        """

    @abstractmethod
    async def list_backends(self) -> List[Backend]:
        """
        Return copies of all registered backends, in pool order.
        """

    @abstractmethod
    async def set_desired_state(self, backend_id: str, state: DesiredState) -> None:
        """
        Record what the supervisor wants the backend to be.
        """
