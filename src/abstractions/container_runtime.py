from abc import ABC, abstractmethod

from contracts.backend import Backend


class ContainerRuntime(ABC):
    """
    Abstract base class for the runtime that runs backend workers, addressed by Backend.id.
    """

    @abstractmethod
    async def ensure_running(self, backend: Backend) -> str:
        """
        Make sure the backend's container runs, reusing an existing one where possible.

        Args:
            backend (Backend): The backend to run.

        Returns:
            str: What was done: "reused", "started" or "created".

        Raises:
            BackendLaunchFailure: If the backend could not be started.
        """

    @abstractmethod
    async def stop(self, backend_id: str) -> bool:
        """
        Stop the backend's container.

        Returns:
            bool: True if a container was stopped, False if none exists.
        """

    @abstractmethod
    async def status(self, backend_id: str) -> str:
        """
        Return the container state ("running", "exited", "missing", ...).
        """

    @abstractmethod
    async def logs(self, backend_id: str, tail: int = 3) -> str:
        """
        Return the last `tail` lines of the backend's output.
        """
