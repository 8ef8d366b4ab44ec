"""Shared pytest fixtures and configuration."""

import pytest
from prometheus_client import REGISTRY


@pytest.fixture(autouse=True)
def reset_prometheus_registry():
    """Reset Prometheus registry before each test to avoid duplicate metric errors."""
    collectors = list(REGISTRY._collector_to_names.keys())

    for collector in collectors:
        try:
            REGISTRY.unregister(collector)
        except KeyError:
            pass

    yield

    collectors = list(REGISTRY._collector_to_names.keys())
    for collector in collectors:
        try:
            REGISTRY.unregister(collector)
        except KeyError:
            pass
