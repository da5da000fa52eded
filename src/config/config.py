import os
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from contracts.backend import BackendSpec

# The two web servers the pool was originally built around.
DEFAULT_BACKENDS = [
    {
        "id": "webserver1",
        "address": "localhost",
        "port": 8081,
        "image": "web_docker_server",
        "container_port": 80,
    },
    {
        "id": "webserver2",
        "address": "localhost",
        "port": 8082,
        "image": "web_docker_server2",
        "container_port": 80,
    },
]


class Config:
    """
    Configuration class for environment variables and default settings.
    """

    ROUTER_HOST = os.environ.get("ROUTER_HOST", "0.0.0.0")
    ROUTER_PORT = int(os.environ.get("ROUTER_PORT", "8000"))

    # Control API of the running supervisor, used by the operator CLI
    ADMIN_HOST = os.environ.get("ADMIN_HOST", "127.0.0.1")
    ADMIN_PORT = int(os.environ.get("ADMIN_PORT", "8100"))
    SUPERVISOR_URL = os.environ.get(
        "SUPERVISOR_URL", f"http://{ADMIN_HOST}:{ADMIN_PORT}"
    )

    PROBE_INTERVAL_SECONDS = float(os.environ.get("PROBE_INTERVAL_SECONDS", "2.0"))
    PROBE_TIMEOUT_SECONDS = float(os.environ.get("PROBE_TIMEOUT_SECONDS", "1.0"))
    PROBE_PATH = os.environ.get("PROBE_PATH", "/")
    FAILURE_THRESHOLD = int(os.environ.get("FAILURE_THRESHOLD", "3"))

    START_TIMEOUT_SECONDS = float(os.environ.get("START_TIMEOUT_SECONDS", "30.0"))
    FORWARD_TIMEOUT_SECONDS = float(os.environ.get("FORWARD_TIMEOUT_SECONDS", "10.0"))

    # JSON list of backend specs; falls back to DEFAULT_BACKENDS
    POOL_BACKENDS = os.environ.get("POOL_BACKENDS")

    # Docker label put on every container launched for the pool
    CONTAINER_LABEL = os.environ.get("CONTAINER_LABEL", "webpool.backend")


_specs_adapter = TypeAdapter(List[BackendSpec])


def load_backend_specs(raw: Optional[str] = None) -> List[BackendSpec]:
    """
    Parse the static backend configuration.

    Args:
        raw (Optional[str]): JSON list of backend specs. If None, uses Config.POOL_BACKENDS
            and then the built-in defaults.

    Returns:
        List[BackendSpec]: Validated backend specs, in configuration order.

    Raises:
        ValueError: If the configuration is not valid JSON, fails validation or repeats an id.
    """
    raw = raw if raw is not None else Config.POOL_BACKENDS
    try:
        if raw:
            specs = _specs_adapter.validate_json(raw)
        else:
            specs = _specs_adapter.validate_python(DEFAULT_BACKENDS)
    except ValidationError as e:
        raise ValueError(f"Invalid backend configuration: {e}") from e

    ids = [spec.id for spec in specs]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ValueError(f"Duplicate backend ids in configuration: {duplicates}")
    if not specs:
        raise ValueError("Backend configuration is empty.")
    return specs

