import time
from typing import Optional

from pydantic import BaseModel, Field


class ProbeResult(BaseModel):
    """
    Outcome of a single liveness probe against one backend.
    """

    backend_id: str
    success: bool
    timestamp: float = Field(default_factory=time.time)
    detail: Optional[str] = None
