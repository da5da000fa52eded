from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class DesiredState(str, Enum):
    UP = "up"
    DOWN = "down"


class Health(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class BackendSpec(BaseModel):
    """
    Static configuration of one backend worker, as read from the environment.
    """

    id: str = Field(pattern=r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
    address: str = "localhost"
    port: int = Field(gt=0, lt=65536)
    image: Optional[str] = None
    container_port: int = Field(default=80, gt=0, lt=65536)


class Backend(BaseModel):
    """
    Data model representing a backend worker in the pool.
    """

    id: str
    address: str
    port: int
    image: Optional[str] = None
    container_port: int = 80
    desired_state: DesiredState = DesiredState.DOWN
    observed_health: Health = Health.UNKNOWN

    @classmethod
    def from_spec(cls, spec: BackendSpec) -> "Backend":
        return cls(**spec.model_dump())

    @property
    def url(self) -> str:
        return f"http://{self.address}:{self.port}"

    @property
    def is_healthy(self) -> bool:
        return self.observed_health == Health.HEALTHY

    def __eq__(self, other):
        """
        Backends are identified by id only.
        """
        if not isinstance(other, Backend):
            return False
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return (
            f"Backend(id={self.id}, url={self.url}, desired={self.desired_state.value}, "
            f"health={self.observed_health.value})"
        )

