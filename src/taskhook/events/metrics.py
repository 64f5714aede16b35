"""Prometheus metrics for the webhook pipeline.

Metrics are exposed at the `/metrics` endpoint in Prometheus format.

Metrics Defined:
- taskhook_webhook_deliveries_total: Counter of deliveries by event and outcome
- taskhook_commits_classified_total: Counter of classified commits by result
- taskhook_tasks_completed_total: Counter of completion transitions applied
- taskhook_resolution_misses_total: Counter of classified tasks that did not resolve
- taskhook_classification_duration_seconds: Histogram of per-commit classification time
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


logger = logging.getLogger(__name__)


# Classifier calls are bounded by a timeout of a few seconds
DEFAULT_CLASSIFICATION_BUCKETS = (
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
)


class WebhookMetrics:
    """Container for the pipeline's Prometheus metrics.

    Pass a custom registry for testing so tests do not collide on the
    global default registry.

    Example:
        >>> metrics = WebhookMetrics(registry=CollectorRegistry())
        >>> metrics.record_delivery("push", "processed")
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.deliveries_total = Counter(
            "taskhook_webhook_deliveries_total",
            "Webhook deliveries received, by event type and outcome",
            labelnames=["event", "outcome"],
            registry=self.registry,
        )

        # result: match, no_match, failed
        self.commits_classified_total = Counter(
            "taskhook_commits_classified_total",
            "Commit messages sent to the classifier, by result",
            labelnames=["result"],
            registry=self.registry,
        )

        self.tasks_completed_total = Counter(
            "taskhook_tasks_completed_total",
            "Completion transitions applied to tasks",
            registry=self.registry,
        )

        self.resolution_misses_total = Counter(
            "taskhook_resolution_misses_total",
            "Classified tasks that were missing or not linked to the pushing repository",
            registry=self.registry,
        )

        self.classification_duration_seconds = Histogram(
            "taskhook_classification_duration_seconds",
            "Time spent classifying a single commit message",
            buckets=DEFAULT_CLASSIFICATION_BUCKETS,
            registry=self.registry,
        )

    def record_delivery(self, event: str, outcome: str) -> None:
        self.deliveries_total.labels(event=event, outcome=outcome).inc()

    def record_classification(self, result: str, duration_seconds: float) -> None:
        self.commits_classified_total.labels(result=result).inc()
        self.classification_duration_seconds.observe(duration_seconds)

    def record_task_completed(self) -> None:
        self.tasks_completed_total.inc()

    def record_resolution_miss(self) -> None:
        self.resolution_misses_total.inc()


_default_metrics: Optional[WebhookMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> WebhookMetrics:
    """Get the global metrics instance, or a new one for a custom registry.

    Args:
        registry: Optional Prometheus registry.

    Returns:
        WebhookMetrics: The metrics instance.
    """
    global _default_metrics

    if registry is not None:
        return WebhookMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = WebhookMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus text output for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)
