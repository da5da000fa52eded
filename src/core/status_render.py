"""
Text rendering of the structured reports for the operator CLI.
"""
from typing import List

from contracts.backend import Health
from contracts.status import LogsReport, SelfTestReport, StatusReport

_HEALTH_LABELS = {
    Health.HEALTHY: "HEALTHY",
    Health.UNHEALTHY: "UNHEALTHY",
    Health.UNKNOWN: "UNKNOWN",
}


def render_status(report: StatusReport) -> str:
    lines: List[str] = ["====== WEB SERVICE STATUS ======", ""]
    lines.append(f"Supervisor: {report.state.value.upper()}")
    lines.append("")

    router = report.router
    lines.append(f"Router ({router.host}:{router.port}): {'RUNNING' if router.running else 'STOPPED'}")
    lines.append(f"   Reachable: {'yes' if router.reachable else 'no'}")
    lines.append("")

    lines.append(f"Backends ({report.healthy_backends}/{len(report.backends)} healthy):")
    if not report.backends:
        lines.append("   No backends configured")
    for b in report.backends:
        lines.append(
            f"   {b.id:<16} {b.address}:{b.port:<6} "
            f"desired={b.desired_state.value:<5} "
            f"health={_HEALTH_LABELS[b.observed_health]:<9} "
            f"container={b.runtime_status or 'n/a'}"
        )
        if b.consecutive_failures:
            lines.append(f"      {b.consecutive_failures} consecutive probe failures")
    return "\n".join(lines)


def render_self_test(report: SelfTestReport) -> str:
    lines: List[str] = [f"Load balancing test ({len(report.requests)} requests):"]
    for r in report.requests:
        if r.error:
            lines.append(f"   Request {r.attempt}: failed ({r.error})")
        else:
            lines.append(
                f"   Request {r.attempt}: HTTP {r.status_code} from {r.backend_id or 'unknown backend'}"
            )

    if report.failover is not None:
        f = report.failover
        lines.append("")
        lines.append("Failover test:")
        lines.append(f"   Stopped backend: {f.stopped_backend}")
        lines.append(f"   Marked unhealthy: {'yes' if f.condemned else 'no'}")
        if f.error:
            lines.append(f"   Request failed: {f.error}")
        else:
            lines.append(f"   Request: HTTP {f.status_code} from {f.served_by or 'unknown backend'}")
        lines.append(f"   Result: {'OK' if f.passed else 'FAILED'}")

    lines.append("")
    lines.append("Testing completed!" if report.passed else "Testing found problems.")
    return "\n".join(lines)


def render_logs(report: LogsReport) -> str:
    lines: List[str] = ["====== WEB SERVICE LOGS ======", ""]
    lines.append(f"--- Supervisor logs (last {len(report.supervisor)} lines) ---")
    lines.extend(report.supervisor or ["   Supervisor logs not available"])
    for backend_id, text in report.backends.items():
        lines.append("")
        lines.append(f"--- Container {backend_id} logs ---")
        lines.append(text.rstrip("\n") if text.strip() else "   Logs not available")
    return "\n".join(lines)
