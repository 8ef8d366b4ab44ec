"""Observability and metrics module for the page router.

Provides Prometheus metrics for requests, resolutions and page renders, and
the health checks behind the health, liveness and readiness endpoints.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)

from pagerouter.core.config import MetricsConfig


class HealthStatus(Enum):
    """Health check status enumeration."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
}


@dataclass
class ComponentHealth:
    """Health status of a component."""

    name: str
    status: HealthStatus
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"name": self.name, "status": self.status.value}
        if self.message:
            result["message"] = self.message
        if self.details:
            result["details"] = self.details
        return result


HealthCheck = Callable[[], ComponentHealth]


class RouterMetrics:
    """Page router metrics collector using Prometheus."""

    def __init__(self, config: MetricsConfig):
        """Initialize the metrics collector.

        Args:
            config: Metrics configuration
        """
        self.config = config
        self._health_checks: Dict[str, HealthCheck] = {}

        self.request_total = Counter(
            "pagerouter_requests_total",
            "Total number of HTTP requests",
            ["method", "status"],
        )

        self.request_duration = Histogram(
            "pagerouter_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        # Labelled by outcome rather than path to keep cardinality bounded
        self.resolutions_total = Counter(
            "pagerouter_resolutions_total",
            "Total number of request path resolutions",
            ["outcome"],
        )

        self.page_renders_total = Counter(
            "pagerouter_page_renders_total",
            "Total number of page handler invocations",
            ["page"],
        )

        self.errors_total = Counter(
            "pagerouter_errors_total",
            "Total number of errors",
            ["error_type"],
        )

    def record_request(self, method: str, status_code: int, duration_seconds: float) -> None:
        self.request_total.labels(method=method, status=str(status_code)).inc()
        self.request_duration.labels(method=method).observe(duration_seconds)

    def record_resolution(self, outcome: str) -> None:
        """Record a resolution outcome (resolved, redirect, rejected)."""
        self.resolutions_total.labels(outcome=outcome).inc()

    def record_page_render(self, page: str) -> None:
        self.page_renders_total.labels(page=page).inc()

    def record_error(self, error_type: str) -> None:
        self.errors_total.labels(error_type=error_type).inc()

    def register_health_check(self, name: str, check_func: HealthCheck) -> None:
        """Register a health check, replacing any check with the same name.

        Args:
            name: Component name
            check_func: Function that returns ComponentHealth
        """
        self._health_checks[name] = check_func

    def _run_check(self, name: str, check_func: HealthCheck) -> ComponentHealth:
        try:
            return check_func()
        except Exception as e:
            return ComponentHealth(
                name=name,
                status=HealthStatus.UNHEALTHY,
                message=f"Health check failed: {e}",
            )

    def check_health(self, detailed: bool = False) -> Dict[str, Any]:
        """Check health of all registered components.

        The overall status is the worst status of any component.

        Args:
            detailed: Whether to include per-component status

        Returns:
            Dictionary with health check results
        """
        if not self._health_checks:
            return {
                "status": HealthStatus.HEALTHY.value,
                "message": "No health checks registered",
            }

        results = [self._run_check(name, check) for name, check in self._health_checks.items()]
        overall = max((result.status for result in results), key=lambda status: status.severity)

        health: Dict[str, Any] = {"status": overall.value, "timestamp": time.time()}
        if detailed:
            health["components"] = [result.to_dict() for result in results]
        return health

    def check_liveness(self) -> Dict[str, Any]:
        return {"status": HealthStatus.HEALTHY.value, "timestamp": time.time()}

    def check_readiness(self) -> Dict[str, Any]:
        """Check if the service is ready to accept traffic."""
        health = self.check_health()
        return {
            "status": health["status"],
            "ready": health["status"] == HealthStatus.HEALTHY.value,
            "timestamp": time.time(),
        }

    def export_metrics(self) -> bytes:
        """Export metrics in Prometheus format."""
        return generate_latest(REGISTRY)
