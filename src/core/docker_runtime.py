import asyncio
import logging
from typing import Callable, Optional

import docker
from docker.errors import DockerException, NotFound

from abstractions.container_runtime import ContainerRuntime
from config.config import Config
from contracts.backend import Backend
from core.errors import BackendLaunchFailure, ContainerRuntimeError

logger = logging.getLogger(__name__)


class DockerRuntime(ContainerRuntime):
    """
    Runs each backend as a Docker container named after the backend id.

    The docker SDK is synchronous, so every call runs in a worker thread.
    """

    def __init__(
        self,
        client_factory: Callable[[], docker.DockerClient] = docker.from_env,
        label: Optional[str] = None,
    ):
        self._client_factory = client_factory
        self.label = label or Config.CONTAINER_LABEL
        self._docker: Optional[docker.DockerClient] = None

    def _client(self) -> docker.DockerClient:
        if self._docker is None:
            try:
                self._docker = self._client_factory()
            except DockerException as e:
                raise ContainerRuntimeError(f"Docker is not available: {e}") from e
        return self._docker

    def _find(self, name: str):
        try:
            return self._client().containers.get(name)
        except NotFound:
            return None

    async def ensure_running(self, backend: Backend) -> str:
        return await asyncio.to_thread(self._ensure_running, backend)

    def _ensure_running(self, backend: Backend) -> str:
        try:
            container = self._find(backend.id)
            if container is not None:
                container.reload()
                if container.status == "running":
                    logger.info(f"Container {backend.id} already running, reusing it")
                    return "reused"
                container.start()
                logger.info(f"Container {backend.id} started")
                return "started"

            if not backend.image:
                raise BackendLaunchFailure(backend.id, "container not found and no image configured")
            logger.warning(f"Container {backend.id} not found, creating it from {backend.image}")
            self._client().containers.run(
                backend.image,
                detach=True,
                name=backend.id,
                ports={f"{backend.container_port}/tcp": backend.port},
                labels={self.label: backend.id},
                # Restarts are the supervisor's decision, not Docker's
                restart_policy={"Name": "no"},
            )
            logger.info(f"Container {backend.id} created and started")
            return "created"
        except BackendLaunchFailure:
            raise
        except (DockerException, ContainerRuntimeError) as e:
            raise BackendLaunchFailure(backend.id, str(e)) from e

    async def stop(self, backend_id: str) -> bool:
        return await asyncio.to_thread(self._stop, backend_id)

    def _stop(self, backend_id: str) -> bool:
        try:
            container = self._find(backend_id)
            if container is None:
                logger.info(f"Container {backend_id} not found, nothing to stop")
                return False
            container.stop()
            logger.info(f"Container {backend_id} stopped")
            return True
        except DockerException as e:
            raise ContainerRuntimeError(f"Failed to stop {backend_id}: {e}") from e

    async def status(self, backend_id: str) -> str:
        return await asyncio.to_thread(self._status, backend_id)

    def _status(self, backend_id: str) -> str:
        try:
            container = self._find(backend_id)
            if container is None:
                return "missing"
            container.reload()
            return container.status
        except DockerException as e:
            raise ContainerRuntimeError(f"Failed to inspect {backend_id}: {e}") from e

    async def logs(self, backend_id: str, tail: int = 3) -> str:
        return await asyncio.to_thread(self._logs, backend_id, tail)

    def _logs(self, backend_id: str, tail: int) -> str:
        try:
            container = self._find(backend_id)
            if container is None:
                return ""
            return container.logs(tail=tail).decode("utf-8", errors="replace")
        except DockerException as e:
            raise ContainerRuntimeError(f"Failed to read logs of {backend_id}: {e}") from e
