import asyncio
import contextlib
import logging
import socket
from typing import Optional

import uvicorn

logger = logging.getLogger(__name__)


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the hosting process."""

    def install_signal_handlers(self):
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class AppServer:
    """
    Serves an ASGI app with uvicorn inside the running event loop, with explicit
    start and stop so its owner controls the lifecycle.
    """

    def __init__(self, app, host: str, port: int, name: str = "server"):
        self.app = app
        self.host = host
        self.port = port
        self.name = name
        self._server: Optional[_EmbeddedServer] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def local_url(self) -> str:
        host = "127.0.0.1" if self.host in ("0.0.0.0", "") else self.host
        return f"http://{host}:{self.port}"

    def _bind(self) -> socket.socket:
        # Binding here turns a busy port into an OSError for the caller
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError:
            sock.close()
            raise
        # Port 0 asks the OS for a free port
        self.port = sock.getsockname()[1]
        return sock

    async def start(self):
        if self.running:
            return
        sock = self._bind()
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_config=None,
            lifespan="off",
        )
        self._server = _EmbeddedServer(config)
        self._task = asyncio.create_task(
            self._server.serve(sockets=[sock]), name=f"server:{self.name}"
        )
        while not self._server.started:
            if self._task.done():
                # serve() ended before it started listening; surface its error
                self._task.result()
                raise RuntimeError(f"{self.name} exited during startup")
            await asyncio.sleep(0.05)
        logger.info(f"{self.name} listening on {self.host}:{self.port}")

    async def stop(self):
        if not self.running:
            self._task = None
            return
        self._server.should_exit = True
        await self._task
        self._task = None
        logger.info(f"{self.name} stopped")
