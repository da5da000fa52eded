"""
Exceptions raised by the pool, the prober, the container runtime and the supervisor.
"""


class WebPoolError(Exception):
    """Base class for all webpool errors."""


class NoHealthyBackend(WebPoolError):
    """No backend in the pool is currently healthy; the router answers 503."""


class DuplicateBackend(WebPoolError):
    pass


class UnknownBackend(WebPoolError):
    pass


class ProbeTimeout(WebPoolError):
    """A liveness probe did not complete within its timeout. Never leaves the prober."""


class ContainerRuntimeError(WebPoolError):
    """The container runtime could not complete an operation."""


class BackendLaunchFailure(ContainerRuntimeError):
    """A backend could not be started. Only that backend's start attempt fails."""

    def __init__(self, backend_id: str, reason: str):
        super().__init__(f"Failed to launch backend {backend_id}: {reason}")
        self.backend_id = backend_id
        self.reason = reason


class StartupTimeout(WebPoolError):
    """No backend became healthy within the start timeout; the service stays stopped."""


class SupervisorNotRunning(WebPoolError):
    pass
