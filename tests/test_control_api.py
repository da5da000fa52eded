import unittest
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from contracts.backend import DesiredState, Health
from contracts.status import (
    BackendStatus,
    LogsReport,
    RoutedRequest,
    RouterStatus,
    SelfTestReport,
    StatusReport,
    SupervisorState,
)
from control import create_control_app
from core.errors import StartupTimeout, SupervisorNotRunning
from core.metrics_manager import MetricsManager


def make_report(state=SupervisorState.RUNNING):
    return StatusReport(
        state=state,
        router=RouterStatus(host="0.0.0.0", port=8000, running=True, reachable=True),
        backends=[
            BackendStatus(
                id="webserver1",
                address="localhost",
                port=8081,
                desired_state=DesiredState.UP,
                observed_health=Health.HEALTHY,
                runtime_status="running",
            )
        ],
    )


class TestControlApi(unittest.TestCase):
    def setUp(self):
        self.supervisor = MagicMock()
        self.supervisor.state = SupervisorState.RUNNING
        self.supervisor.status = AsyncMock(return_value=make_report())
        self.supervisor.start = AsyncMock(return_value=SupervisorState.RUNNING)
        self.supervisor.stop = AsyncMock(return_value=SupervisorState.STOPPED)
        self.supervisor.restart = AsyncMock(return_value=SupervisorState.RUNNING)
        self.on_stop = MagicMock()
        self.metrics = MetricsManager()
        app = create_control_app(self.supervisor, self.metrics, on_stop=self.on_stop)
        self.client = TestClient(app)

    def test_status(self):
        response = self.client.get("/status")
        self.assertEqual(response.status_code, 200)
        report = StatusReport.model_validate(response.json())
        self.assertEqual(report.state, SupervisorState.RUNNING)
        self.assertEqual(report.backends[0].observed_health, Health.HEALTHY)

    def test_start(self):
        response = self.client.post("/start")
        self.assertEqual(response.status_code, 200)
        self.supervisor.start.assert_awaited_once()

    def test_start_timeout_is_503(self):
        self.supervisor.start = AsyncMock(side_effect=StartupTimeout("no healthy backend"))
        self.supervisor.state = SupervisorState.STOPPED
        response = self.client.post("/start")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["state"], "stopped")
        self.assertIn("no healthy backend", response.json()["error"])

    def test_unexpected_start_error_is_json(self):
        self.supervisor.start = AsyncMock(side_effect=OSError("address already in use"))
        self.supervisor.state = SupervisorState.STOPPED
        response = self.client.post("/start")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["state"], "stopped")
        self.assertIn("address already in use", response.json()["error"])

    def test_stop_notifies_host_process(self):
        response = self.client.post("/stop")
        self.assertEqual(response.status_code, 200)
        self.supervisor.stop.assert_awaited_once()
        self.on_stop.assert_called_once()

    def test_restart_does_not_notify_host_process(self):
        response = self.client.post("/restart")
        self.assertEqual(response.status_code, 200)
        self.supervisor.restart.assert_awaited_once()
        self.on_stop.assert_not_called()

    def test_logs(self):
        self.supervisor.logs = AsyncMock(
            return_value=LogsReport(supervisor=["line"], backends={"webserver1": "hello\n"})
        )
        response = self.client.get("/logs", params={"tail": 3})
        self.assertEqual(response.status_code, 200)
        self.supervisor.logs.assert_awaited_once_with(3)
        self.assertEqual(response.json()["backends"]["webserver1"], "hello\n")

    def test_logs_rejects_bad_tail(self):
        response = self.client.get("/logs", params={"tail": 0})
        self.assertEqual(response.status_code, 422)

    def test_self_test(self):
        self.supervisor.self_test = AsyncMock(
            return_value=SelfTestReport(
                requests=[RoutedRequest(attempt=1, status_code=200, backend_id="webserver1")]
            )
        )
        response = self.client.post("/test", params={"requests": 1, "failover": "false"})
        self.assertEqual(response.status_code, 200)
        self.supervisor.self_test.assert_awaited_once_with(requests=1, failover=False)

    def test_self_test_when_stopped_is_409(self):
        self.supervisor.self_test = AsyncMock(side_effect=SupervisorNotRunning("not running"))
        response = self.client.post("/test")
        self.assertEqual(response.status_code, 409)

    def test_metrics(self):
        self.metrics.record_no_healthy_backend()
        response = self.client.get("/metrics")
        self.assertEqual(response.status_code, 200)
        self.assertIn("no_healthy_backend_total 1.0", response.text)


if __name__ == "__main__":
    unittest.main()
