import logging
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from contracts.probe_result import ProbeResult

logger = logging.getLogger(__name__)


class MetricsManager:
    """
    Manager for the Prometheus metrics of the router, the prober and the pool.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize the MetricsManager and set up Prometheus metrics.

        Args:
            registry: Collector registry to publish to. Each manager gets its own
                registry by default so several managers can coexist in one process.
        """
        self.registry = registry or CollectorRegistry()
        self.ROUTED_REQUESTS = Counter(
            "routed_requests_total",
            "Requests forwarded to a backend",
            ["backend", "status"],
            registry=self.registry,
        )
        self.NO_HEALTHY_BACKEND = Counter(
            "no_healthy_backend_total",
            "Requests rejected because no backend was healthy",
            registry=self.registry,
        )
        self.UPSTREAM_ERRORS = Counter(
            "upstream_errors_total",
            "Forwarded requests that failed before a backend answered",
            ["backend", "kind"],
            registry=self.registry,
        )
        self.FORWARD_LATENCY = Histogram(
            "forward_latency_seconds",
            "Time spent forwarding a request to its backend",
            registry=self.registry,
        )
        self.PROBES = Counter(
            "probes_total",
            "Liveness probes by outcome",
            ["backend", "outcome"],
            registry=self.registry,
        )
        self.HEALTHY_BACKENDS = Gauge(
            "healthy_backends",
            "Number of backends currently observed healthy",
            registry=self.registry,
        )
        logger.info("MetricsManager initialized.")

    def record_route(self, backend_id: str, status_code: int, elapsed: float):
        self.ROUTED_REQUESTS.labels(backend=backend_id, status=str(status_code)).inc()
        self.FORWARD_LATENCY.observe(elapsed)

    def record_upstream_error(self, backend_id: str, kind: str):
        self.UPSTREAM_ERRORS.labels(backend=backend_id, kind=kind).inc()

    def record_no_healthy_backend(self):
        self.NO_HEALTHY_BACKEND.inc()

    def record_probe(self, result: ProbeResult):
        outcome = "success" if result.success else "failure"
        self.PROBES.labels(backend=result.backend_id, outcome=outcome).inc()

    def set_healthy_backends(self, count: int):
        self.HEALTHY_BACKENDS.set(count)

    def render(self) -> bytes:
        return generate_latest(self.registry)
