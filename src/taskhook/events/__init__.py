"""Real-time task update events and pipeline metrics.

Broadcasters:
- EventBroadcaster: Abstract base class for publishing task updates
- WebSocketBroadcaster: Global fan-out to connected WebSocket subscribers
- LoggingBroadcaster: Publishes updates as structured log entries
- CompositeBroadcaster: Publishes to multiple broadcasters
- NullBroadcaster: Discards updates (for testing)

Metrics:
- WebhookMetrics: Container for all Prometheus metrics
- get_metrics: Get or create the metrics instance
- generate_metrics_output: Generate Prometheus format output for /metrics
"""

from src.taskhook.events.emitter import (
    CompositeBroadcaster,
    EventBroadcaster,
    LoggingBroadcaster,
    NullBroadcaster,
    WebSocketBroadcaster,
)
from src.taskhook.events.metrics import (
    WebhookMetrics,
    generate_metrics_output,
    get_metrics,
)
from src.taskhook.events.models import TASK_UPDATED, TaskUpdatedEvent

__all__ = [
    # Event models
    "TASK_UPDATED",
    "TaskUpdatedEvent",
    # Broadcasters
    "EventBroadcaster",
    "WebSocketBroadcaster",
    "LoggingBroadcaster",
    "CompositeBroadcaster",
    "NullBroadcaster",
    # Metrics
    "WebhookMetrics",
    "get_metrics",
    "generate_metrics_output",
]
