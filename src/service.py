import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import List, Optional

import httpx

from config.config import Config, load_backend_specs
from config.logging_config import setup_logging
from contracts.backend import BackendSpec
from control import create_control_app
from core.app_server import AppServer
from core.docker_runtime import DockerRuntime
from core.errors import WebPoolError
from core.health_prober import HealthProber
from core.metrics_manager import MetricsManager
from core.pool_manager import PoolManager
from core.router import Router
from core.supervisor import Supervisor
from proxy import create_app

logger = logging.getLogger(__name__)


@dataclass
class Service:
    supervisor: Supervisor
    control_server: AppServer
    client: httpx.AsyncClient
    stop_requested: asyncio.Event

    async def close(self):
        await self.supervisor.shutdown()
        await self.control_server.stop()
        await self.client.aclose()


def build_service(specs: Optional[List[BackendSpec]] = None) -> Service:
    """
    Wire the pool, prober, router, runtime and supervisor together from Config.
    """
    specs = specs if specs is not None else load_backend_specs()
    metrics_manager = MetricsManager()
    pool = PoolManager(metrics_manager=metrics_manager)
    prober = HealthProber(pool, metrics_manager=metrics_manager)
    client = httpx.AsyncClient()
    router = Router(client, pool, metrics_manager=metrics_manager)
    router_server = AppServer(
        create_app(router), Config.ROUTER_HOST, Config.ROUTER_PORT, name="router"
    )
    supervisor = Supervisor(specs, pool, prober, DockerRuntime(), router_server)

    stop_requested = asyncio.Event()
    control_app = create_control_app(
        supervisor, metrics_manager, on_stop=stop_requested.set
    )
    control_server = AppServer(
        control_app, Config.ADMIN_HOST, Config.ADMIN_PORT, name="control"
    )
    return Service(supervisor, control_server, client, stop_requested)


async def run_service() -> int:
    """
    Run the supervisor in the foreground until a stop command or SIGINT/SIGTERM.

    Returns:
        int: Process exit code; 1 if the service could not start.
    """
    service = build_service()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, service.stop_requested.set)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    try:
        try:
            await service.supervisor.setup()
            await service.control_server.start()
            await service.supervisor.start()
        except (WebPoolError, OSError, RuntimeError) as e:
            logger.error(f"Service failed to start: {e}")
            return 1

        await service.stop_requested.wait()
        logger.info("Shutdown requested")
        return 0
    finally:
        await service.close()


def main() -> int:
    setup_logging()
    return asyncio.run(run_service())
