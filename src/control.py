import logging
from typing import Callable, Optional

from fastapi import FastAPI, Query, Request, Response
from fastapi.responses import ORJSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from contracts.status import LogsReport, SelfTestReport, StatusReport
from core.errors import StartupTimeout, SupervisorNotRunning, WebPoolError
from core.metrics_manager import MetricsManager
from core.supervisor import Supervisor

logger = logging.getLogger(__name__)


def create_control_app(
    supervisor: Supervisor,
    metrics_manager: MetricsManager,
    on_stop: Optional[Callable[[], None]] = None,
) -> FastAPI:
    """
    Build the control API the operator CLI talks to.

    Args:
        supervisor (Supervisor): The supervisor to operate.
        metrics_manager (MetricsManager): Source of the /metrics exposition.
        on_stop (Optional[Callable[[], None]]): Called after a stop command completed,
            so the hosting process can exit.
    """
    app = FastAPI(title="webpool control", default_response_class=ORJSONResponse)

    @app.middleware("http")
    async def unexpected_error_middleware(request: Request, call_next):
        # Errors without a handler still reach the CLI as JSON
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception(f"Control command {request.url.path} failed")
            return ORJSONResponse(
                {"error": f"{type(exc).__name__}: {exc}", "state": supervisor.state.value},
                status_code=500,
            )

    @app.exception_handler(StartupTimeout)
    async def startup_timeout_handler(request: Request, exc: StartupTimeout):
        return ORJSONResponse({"error": str(exc), "state": supervisor.state.value}, status_code=503)

    @app.exception_handler(SupervisorNotRunning)
    async def not_running_handler(request: Request, exc: SupervisorNotRunning):
        return ORJSONResponse({"error": str(exc), "state": supervisor.state.value}, status_code=409)

    @app.exception_handler(WebPoolError)
    async def webpool_error_handler(request: Request, exc: WebPoolError):
        logger.error(f"Control command failed: {exc}")
        return ORJSONResponse({"error": str(exc), "state": supervisor.state.value}, status_code=500)

    @app.get("/status", response_model=StatusReport)
    async def status():
        return await supervisor.status()

    @app.post("/start", response_model=StatusReport)
    async def start():
        await supervisor.start()
        return await supervisor.status()

    @app.post("/stop", response_model=StatusReport)
    async def stop():
        await supervisor.stop()
        report = await supervisor.status()
        if on_stop:
            on_stop()
        return report

    @app.post("/restart", response_model=StatusReport)
    async def restart():
        await supervisor.restart()
        return await supervisor.status()

    @app.get("/logs", response_model=LogsReport)
    async def logs(tail: int = Query(5, ge=1, le=1000)):
        return await supervisor.logs(tail)

    @app.post("/test", response_model=SelfTestReport)
    async def test(
        requests: int = Query(5, ge=1, le=100),
        failover: bool = True,
    ):
        return await supervisor.self_test(requests=requests, failover=failover)

    @app.get("/metrics")
    def metrics():
        return Response(metrics_manager.render(), media_type=CONTENT_TYPE_LATEST)

    return app
