import io
import unittest
from unittest.mock import MagicMock, patch

import httpx

import cli
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


def status_json(state=SupervisorState.RUNNING):
    report = StatusReport(
        state=state,
        router=RouterStatus(host="0.0.0.0", port=8000, running=True, reachable=True),
        backends=[
            BackendStatus(
                id="webserver1",
                address="localhost",
                port=8081,
                desired_state=DesiredState.UP,
                observed_health=Health.HEALTHY,
            )
        ],
    )
    return report.model_dump(mode="json")


def make_client(reachable=True):
    client = MagicMock()
    client.reachable.return_value = reachable
    if not reachable:
        client.get.side_effect = cli.SupervisorUnavailable("refused")
        client.post.side_effect = cli.SupervisorUnavailable("refused")
    return client


def run(argv, client):
    with patch("cli.ControlClient", return_value=client), patch(
        "sys.stdout", new_callable=io.StringIO
    ) as out, patch("sys.stderr", new_callable=io.StringIO) as err:
        code = cli.main(argv)
    return code, out.getvalue(), err.getvalue()


class TestCli(unittest.TestCase):
    def test_help(self):
        for argv in ([], ["help"], ["--help"]):
            with self.subTest(argv=argv):
                code, out, _ = run(argv, make_client())
                self.assertEqual(code, 0)
                self.assertIn("Usage: webpool", out)

    def test_unknown_command(self):
        code, out, err = run(["bogus"], make_client())
        self.assertEqual(code, 1)
        self.assertIn("Unknown command: bogus", err)
        self.assertIn("Commands:", out)

    def test_status(self):
        client = make_client()
        client.get.return_value = httpx.Response(200, json=status_json())
        code, out, _ = run(["status"], client)
        self.assertEqual(code, 0)
        client.get.assert_called_once_with("/status")
        self.assertIn("Supervisor: RUNNING", out)

    def test_status_offline(self):
        code, out, _ = run(["status"], make_client(reachable=False))
        self.assertEqual(code, 0)
        self.assertIn("Supervisor: STOPPED", out)
        self.assertIn("health=UNKNOWN", out)

    def test_start_runs_service_in_foreground_when_offline(self):
        with patch("cli._run_foreground", return_value=0) as foreground:
            code, _, _ = run(["start"], make_client(reachable=False))
        self.assertEqual(code, 0)
        foreground.assert_called_once()

    def test_start_asks_running_supervisor(self):
        client = make_client()
        client.post.return_value = httpx.Response(200, json=status_json())
        with patch("cli._run_foreground") as foreground:
            code, _, _ = run(["start"], client)
        self.assertEqual(code, 0)
        client.post.assert_called_once_with("/start")
        foreground.assert_not_called()

    def test_start_timeout_fails(self):
        client = make_client()
        client.post.return_value = httpx.Response(
            503, json={"error": "No backend became healthy within 30.0s", "state": "stopped"}
        )
        code, _, err = run(["start"], client)
        self.assertEqual(code, 1)
        self.assertIn("No backend became healthy", err)

    def test_start_with_plain_text_server_error(self):
        client = make_client()
        client.post.return_value = httpx.Response(500, text="Internal Server Error")
        code, _, err = run(["start"], client)
        self.assertEqual(code, 1)
        self.assertIn("Internal Server Error", err)

    def test_test_with_plain_text_server_error(self):
        client = make_client()
        client.post.return_value = httpx.Response(500, text="Internal Server Error")
        code, _, err = run(["test"], client)
        self.assertEqual(code, 1)
        self.assertIn("Internal Server Error", err)

    def test_supervisor_timeout_is_reported(self):
        client = make_client()
        client.post.side_effect = httpx.ReadTimeout("timed out")
        code, _, err = run(["test"], client)
        self.assertEqual(code, 1)
        self.assertIn("ReadTimeout", err)

    def test_stop(self):
        client = make_client()
        client.post.return_value = httpx.Response(200, json=status_json(SupervisorState.STOPPED))
        code, out, _ = run(["stop"], client)
        self.assertEqual(code, 0)
        client.post.assert_called_once_with("/stop")
        self.assertIn("Web service stopped", out)

    def test_stop_when_offline(self):
        code, out, _ = run(["stop"], make_client(reachable=False))
        self.assertEqual(code, 0)
        self.assertIn("nothing to stop", out)

    def test_restart_when_offline_starts(self):
        with patch("cli._run_foreground", return_value=0) as foreground:
            code, _, _ = run(["restart"], make_client(reachable=False))
        self.assertEqual(code, 0)
        foreground.assert_called_once()

    def test_logs(self):
        client = make_client()
        report = LogsReport(supervisor=["Service started"], backends={"webserver1": "GET /\n"})
        client.get.return_value = httpx.Response(200, json=report.model_dump(mode="json"))
        code, out, _ = run(["logs", "--tail", "3"], client)
        self.assertEqual(code, 0)
        client.get.assert_called_once_with("/logs", params={"tail": 3})
        self.assertIn("Service started", out)
        self.assertIn("--- Container webserver1 logs ---", out)

    def test_logs_offline_reads_local_file(self):
        with patch("cli.tail_log_file", return_value=["local line"]) as tail:
            code, out, _ = run(["logs"], make_client(reachable=False))
        self.assertEqual(code, 0)
        tail.assert_called_once_with(cli.LOG_FILE, 5)
        self.assertIn("local line", out)

    def test_test_passes(self):
        client = make_client()
        report = SelfTestReport(
            requests=[RoutedRequest(attempt=1, status_code=200, backend_id="webserver1")]
        )
        client.post.return_value = httpx.Response(200, json=report.model_dump(mode="json"))
        code, out, _ = run(["test", "--requests", "1", "--no-failover"], client)
        self.assertEqual(code, 0)
        client.post.assert_called_once_with("/test", params={"requests": 1, "failover": "false"})
        self.assertIn("Testing completed!", out)

    def test_test_fails_on_server_errors(self):
        client = make_client()
        report = SelfTestReport(requests=[RoutedRequest(attempt=1, status_code=503)])
        client.post.return_value = httpx.Response(200, json=report.model_dump(mode="json"))
        code, _, _ = run(["test"], client)
        self.assertEqual(code, 1)

    def test_test_when_offline(self):
        code, _, err = run(["test"], make_client(reachable=False))
        self.assertEqual(code, 1)
        self.assertIn("webpool start", err)


class TestControlClient(unittest.TestCase):
    @patch("cli.httpx.Client")
    def test_connection_refused_means_unavailable(self, mock_client):
        mock_client.return_value.__enter__.return_value.request.side_effect = httpx.ConnectError(
            "refused"
        )
        client = cli.ControlClient("http://127.0.0.1:8100/")
        with self.assertRaises(cli.SupervisorUnavailable):
            client.get("/status")
        self.assertFalse(client.reachable())

    @patch("cli.httpx.Client")
    def test_request_url(self, mock_client):
        request = mock_client.return_value.__enter__.return_value.request
        request.return_value = httpx.Response(200, json={})
        client = cli.ControlClient("http://127.0.0.1:8100/")
        self.assertTrue(client.reachable())
        request.assert_called_once_with("GET", "http://127.0.0.1:8100/status")


if __name__ == "__main__":
    unittest.main()
