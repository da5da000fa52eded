import argparse
import sys
from typing import Callable, Dict, List, Optional

import httpx

from config.config import Config, load_backend_specs
from config.logging_config import LOG_FILE
from contracts.backend import DesiredState, Health
from contracts.status import (
    BackendStatus,
    LogsReport,
    RouterStatus,
    SelfTestReport,
    StatusReport,
    SupervisorState,
)
from core.status_render import render_logs, render_self_test, render_status
from core.supervisor import tail_log_file

USAGE = """\
Web service management (router + backend containers)

Usage: webpool {command}

Commands:
  start     - Start entire service
  stop      - Stop entire service
  restart   - Restart entire service
  status    - Show status of all components
  logs      - Show logs (supervisor and containers)
  test      - Test functionality
  help      - Show this help

Examples:
  webpool start   # Start everything
  webpool status  # Check status"""

# Lifecycle commands may wait for backends to become healthy
COMMAND_TIMEOUT = Config.START_TIMEOUT_SECONDS + 30.0


class SupervisorUnavailable(Exception):
    pass


class ControlClient:
    """
    Talks to the control API of a running supervisor.
    """

    def __init__(self, base_url: str, timeout: float = COMMAND_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                return client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.ConnectError as e:
            raise SupervisorUnavailable(str(e)) from e

    def reachable(self) -> bool:
        try:
            self._request("GET", "/status")
            return True
        except (SupervisorUnavailable, httpx.HTTPError):
            return False

    def get(self, path: str, **kwargs) -> httpx.Response:
        return self._request("GET", path, **kwargs)

    def post(self, path: str, **kwargs) -> httpx.Response:
        return self._request("POST", path, **kwargs)


def _error(message: str):
    print(f"[ERROR] {message}", file=sys.stderr)


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])
    return resp.text


def _print_status_response(resp: httpx.Response) -> int:
    if resp.status_code != 200:
        _error(_error_detail(resp))
        return 1
    print(render_status(StatusReport.model_validate(resp.json())))
    return 0


def offline_status() -> StatusReport:
    """Status of a service whose supervisor is not running."""
    backends = [
        BackendStatus(
            id=spec.id,
            address=spec.address,
            port=spec.port,
            desired_state=DesiredState.DOWN,
            observed_health=Health.UNKNOWN,
        )
        for spec in load_backend_specs()
    ]
    router = RouterStatus(
        host=Config.ROUTER_HOST, port=Config.ROUTER_PORT, running=False, reachable=False
    )
    return StatusReport(state=SupervisorState.STOPPED, backends=backends, router=router)


def _run_foreground() -> int:
    # Imported here so the client-side commands stay light
    from service import main as service_main

    print("[INFO] Starting web service...")
    return service_main()


def cmd_start(client: ControlClient, args) -> int:
    if not client.reachable():
        return _run_foreground()
    print("[INFO] Supervisor already running, starting service...")
    return _print_status_response(client.post("/start"))


def cmd_stop(client: ControlClient, args) -> int:
    try:
        resp = client.post("/stop")
    except SupervisorUnavailable:
        print("[WARN] Supervisor is not running, nothing to stop.")
        return 0
    code = _print_status_response(resp)
    if code == 0:
        print("[OK] Web service stopped")
    return code


def cmd_restart(client: ControlClient, args) -> int:
    try:
        resp = client.post("/restart")
    except SupervisorUnavailable:
        print("[WARN] Supervisor is not running, starting it.")
        return _run_foreground()
    return _print_status_response(resp)


def cmd_status(client: ControlClient, args) -> int:
    try:
        return _print_status_response(client.get("/status"))
    except SupervisorUnavailable:
        print(render_status(offline_status()))
        return 0


def cmd_logs(client: ControlClient, args) -> int:
    try:
        resp = client.get("/logs", params={"tail": args.tail})
    except SupervisorUnavailable:
        print("[WARN] Supervisor is not running, showing local log file only.")
        report = LogsReport(supervisor=tail_log_file(LOG_FILE, args.tail))
        print(render_logs(report))
        return 0
    if resp.status_code != 200:
        _error(resp.text)
        return 1
    print(render_logs(LogsReport.model_validate(resp.json())))
    return 0


def cmd_test(client: ControlClient, args) -> int:
    print("[INFO] Testing service functionality...")
    try:
        resp = client.post(
            "/test",
            params={"requests": args.requests, "failover": str(not args.no_failover).lower()},
        )
    except SupervisorUnavailable:
        _error("Supervisor is not running. Run 'webpool start' first.")
        return 1
    if resp.status_code != 200:
        _error(_error_detail(resp))
        return 1
    report = SelfTestReport.model_validate(resp.json())
    print(render_self_test(report))
    return 0 if report.passed else 1


def cmd_help(client: ControlClient, args) -> int:
    print(USAGE)
    return 0


COMMANDS: Dict[str, Callable[[ControlClient, argparse.Namespace], int]] = {
    "start": cmd_start,
    "stop": cmd_stop,
    "restart": cmd_restart,
    "status": cmd_status,
    "logs": cmd_logs,
    "test": cmd_test,
    "help": cmd_help,
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="webpool", add_help=False)
    p.add_argument("command", nargs="?", default="help")
    p.add_argument("-h", "--help", action="store_true", dest="show_help")
    p.add_argument("--api", default=Config.SUPERVISOR_URL, help="Control API base URL")
    p.add_argument("--tail", type=int, default=5, help="Log lines to show")
    p.add_argument("--requests", type=int, default=5, help="Requests sent by 'test'")
    p.add_argument("--no-failover", action="store_true", help="Skip the failover part of 'test'")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.show_help:
        args.command = "help"

    handler = COMMANDS.get(args.command)
    if handler is None:
        _error(f"Unknown command: {args.command}")
        print("")
        print(USAGE)
        return 1

    try:
        return handler(ControlClient(args.api), args)
    except httpx.HTTPError as e:
        _error(f"Request to the supervisor failed: {type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
