"""Pytest configuration for all tests."""

import pytest
from prometheus_client import CollectorRegistry

from src.taskhook.events.metrics import WebhookMetrics
from src.taskhook.state.memory import InMemoryTaskStore


@pytest.fixture
def registry() -> CollectorRegistry:
    """A private Prometheus registry so tests never share counters."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> WebhookMetrics:
    return WebhookMetrics(registry=registry)


@pytest.fixture
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore()
