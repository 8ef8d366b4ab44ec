"""Unit tests for metrics module."""

import pytest
from prometheus_client import REGISTRY

from pagerouter.core.config import MetricsConfig
from pagerouter.core.metrics import (
    ComponentHealth,
    HealthStatus,
    RouterMetrics,
)


@pytest.fixture
def metrics_config() -> MetricsConfig:
    """Create a test metrics configuration."""
    return MetricsConfig(
        enabled=True,
        endpoint="/metrics",
        health_endpoint="/health",
        liveness_endpoint="/health/live",
        readiness_endpoint="/health/ready",
    )


@pytest.fixture
def router_metrics(metrics_config: MetricsConfig) -> RouterMetrics:
    """Create a test router metrics instance."""
    return RouterMetrics(metrics_config)


def test_component_health() -> None:
    """Test ComponentHealth model."""
    health = ComponentHealth(
        name="pages",
        status=HealthStatus.HEALTHY,
        message="All good",
        details={"pages_dir": "/srv/pages"},
    )

    health_dict = health.to_dict()
    assert health_dict["name"] == "pages"
    assert health_dict["status"] == "healthy"
    assert health_dict["message"] == "All good"
    assert health_dict["details"]["pages_dir"] == "/srv/pages"


def test_component_health_minimal() -> None:
    """Test ComponentHealth leaves out empty fields."""
    health_dict = ComponentHealth(name="pages", status=HealthStatus.DEGRADED).to_dict()

    assert health_dict == {"name": "pages", "status": "degraded"}


def test_record_request(router_metrics: RouterMetrics) -> None:
    """Test recording HTTP requests."""
    router_metrics.record_request(method="GET", status_code=200, duration_seconds=0.05)
    router_metrics.record_request(method="GET", status_code=200, duration_seconds=0.01)

    value = REGISTRY.get_sample_value(
        "pagerouter_requests_total", {"method": "GET", "status": "200"}
    )
    assert value == 2.0


def test_record_resolution(router_metrics: RouterMetrics) -> None:
    """Test recording resolution outcomes."""
    router_metrics.record_resolution("resolved")
    router_metrics.record_resolution("redirect")
    router_metrics.record_resolution("redirect")

    assert REGISTRY.get_sample_value("pagerouter_resolutions_total", {"outcome": "resolved"}) == 1.0
    assert REGISTRY.get_sample_value("pagerouter_resolutions_total", {"outcome": "redirect"}) == 2.0


def test_record_page_render_and_error(router_metrics: RouterMetrics) -> None:
    """Test recording page renders and errors."""
    router_metrics.record_page_render("users/show.py")
    router_metrics.record_error("page_load_error")

    assert (
        REGISTRY.get_sample_value("pagerouter_page_renders_total", {"page": "users/show.py"})
        == 1.0
    )
    assert (
        REGISTRY.get_sample_value("pagerouter_errors_total", {"error_type": "page_load_error"})
        == 1.0
    )


def test_health_check_no_checks(router_metrics: RouterMetrics) -> None:
    """Test health check with no registered checks."""
    health = router_metrics.check_health()
    assert health["status"] == "healthy"
    assert "No health checks registered" in health["message"]


def test_health_check_with_checks(router_metrics: RouterMetrics) -> None:
    """Test health check with registered checks."""
    router_metrics.register_health_check(
        "pages", lambda: ComponentHealth(name="pages", status=HealthStatus.HEALTHY)
    )

    health = router_metrics.check_health(detailed=True)
    assert health["status"] == "healthy"
    assert len(health["components"]) == 1
    assert health["components"][0]["name"] == "pages"


def test_health_check_degraded(router_metrics: RouterMetrics) -> None:
    """Test a degraded component degrades overall health."""
    router_metrics.register_health_check(
        "pages", lambda: ComponentHealth(name="pages", status=HealthStatus.HEALTHY)
    )
    router_metrics.register_health_check(
        "cache", lambda: ComponentHealth(name="cache", status=HealthStatus.DEGRADED)
    )

    health = router_metrics.check_health()
    assert health["status"] == "degraded"
    assert "components" not in health


def test_health_check_unhealthy(router_metrics: RouterMetrics) -> None:
    """Test health check with unhealthy component."""
    router_metrics.register_health_check(
        "pages",
        lambda: ComponentHealth(
            name="pages", status=HealthStatus.UNHEALTHY, message="Pages directory missing"
        ),
    )

    health = router_metrics.check_health(detailed=True)
    assert health["status"] == "unhealthy"
    assert health["components"][0]["message"] == "Pages directory missing"


def test_health_check_exception(router_metrics: RouterMetrics) -> None:
    """Test a failing health check reports the component unhealthy."""

    def failing_check() -> ComponentHealth:
        raise RuntimeError("boom")

    router_metrics.register_health_check("pages", failing_check)

    health = router_metrics.check_health(detailed=True)
    assert health["status"] == "unhealthy"
    assert "boom" in health["components"][0]["message"]


def test_liveness_check(router_metrics: RouterMetrics) -> None:
    """Test liveness check."""
    liveness = router_metrics.check_liveness()
    assert liveness["status"] == "healthy"
    assert "timestamp" in liveness


def test_readiness_check(router_metrics: RouterMetrics) -> None:
    """Test readiness check."""
    router_metrics.register_health_check(
        "pages", lambda: ComponentHealth(name="pages", status=HealthStatus.HEALTHY)
    )
    assert router_metrics.check_readiness()["ready"] is True

    router_metrics.register_health_check(
        "pages", lambda: ComponentHealth(name="pages", status=HealthStatus.UNHEALTHY)
    )
    readiness = router_metrics.check_readiness()
    assert readiness["ready"] is False
    assert readiness["status"] == "unhealthy"


def test_export_metrics(router_metrics: RouterMetrics) -> None:
    """Test metrics export in Prometheus format."""
    router_metrics.record_resolution("rejected")

    exported = router_metrics.export_metrics()

    assert isinstance(exported, bytes)
    assert b"pagerouter_resolutions_total" in exported
