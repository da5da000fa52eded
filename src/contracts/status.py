import time
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from contracts.backend import DesiredState, Health


class SupervisorState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class BackendStatus(BaseModel):
    id: str
    address: str
    port: int
    desired_state: DesiredState
    observed_health: Health
    consecutive_failures: int = 0
    # Container state as reported by the runtime ("running", "exited", "missing", ...)
    runtime_status: Optional[str] = None


class RouterStatus(BaseModel):
    host: str
    port: int
    running: bool
    reachable: bool


class StatusReport(BaseModel):
    """
    Read-only snapshot of the whole service.
    """

    state: SupervisorState
    backends: List[BackendStatus] = Field(default_factory=list)
    router: RouterStatus
    generated_at: float = Field(default_factory=time.time)

    @property
    def healthy_backends(self) -> int:
        return sum(1 for b in self.backends if b.observed_health == Health.HEALTHY)


class RoutedRequest(BaseModel):
    attempt: int
    status_code: Optional[int] = None
    backend_id: Optional[str] = None
    error: Optional[str] = None


class FailoverResult(BaseModel):
    stopped_backend: str
    condemned: bool
    status_code: Optional[int] = None
    served_by: Optional[str] = None
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        if not self.condemned or self.status_code is None or self.status_code >= 500:
            return False
        return self.served_by != self.stopped_backend


class SelfTestReport(BaseModel):
    requests: List[RoutedRequest] = Field(default_factory=list)
    failover: Optional[FailoverResult] = None

    @property
    def passed(self) -> bool:
        routed_ok = all(
            r.status_code is not None and r.status_code < 500 for r in self.requests
        )
        return routed_ok and (self.failover is None or self.failover.passed)


class LogsReport(BaseModel):
    supervisor: List[str] = Field(default_factory=list)
    backends: Dict[str, str] = Field(default_factory=dict)
