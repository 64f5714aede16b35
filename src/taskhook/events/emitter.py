"""Broadcasters that publish task updates to real-time subscribers.

This module defines an abstract EventBroadcaster interface and concrete
implementations for different sinks:

- WebSocketBroadcaster: Fans events out to every connected WebSocket client
- LoggingBroadcaster: Writes events as structured log entries
- CompositeBroadcaster: Publishes to multiple broadcasters
- NullBroadcaster: Discards events (for testing)

The broadcaster is injected into the WebhookReceiver rather than kept on
shared application state. Publishing is fire-and-forget: implementations
log failures and never raise into the pipeline.

Source:
- src/taskhook/events/models.py (TaskUpdatedEvent)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Set

from fastapi import WebSocket

from src.taskhook.events.models import TaskUpdatedEvent


logger = logging.getLogger(__name__)


class EventBroadcaster(ABC):
    """Abstract base class for task update broadcasters.

    Implementations should be:
    - Async-safe: publish() is called from concurrent requests
    - Fault-tolerant: publish() failures must not reach the caller
    """

    @abstractmethod
    async def publish(self, event: TaskUpdatedEvent) -> None:
        """Publish a task update to subscribers.

        Args:
            event: The task update to publish.
        """
        pass

    async def close(self) -> None:
        """Release resources held by the broadcaster."""
        pass


class WebSocketBroadcaster(EventBroadcaster):
    """Hub of connected WebSocket subscribers with global fan-out.

    Every event goes to every connected subscriber; delivery is not
    scoped per project or repository. Sends run concurrently and each is
    bounded by ``send_timeout``, so one stalled client cannot hold up a
    webhook delivery. Subscribers whose send fails or times out are
    dropped from the hub.

    Example:
        >>> hub = WebSocketBroadcaster(send_timeout=5.0)
        >>> await hub.connect(websocket)
        >>> await hub.publish(TaskUpdatedEvent(task_id="TASK-07", commit_message="fix"))
    """

    def __init__(self, send_timeout: float = 5.0) -> None:
        self.send_timeout = send_timeout
        self._subscribers: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a WebSocket connection and register it as a subscriber."""
        await websocket.accept()
        async with self._lock:
            self._subscribers.add(websocket)
        logger.info(
            "Subscriber connected",
            extra={"subscribers": len(self._subscribers)},
        )

    async def disconnect(self, websocket: WebSocket) -> None:
        """Forget a subscriber. Unknown sockets are ignored."""
        async with self._lock:
            self._subscribers.discard(websocket)
        logger.info(
            "Subscriber disconnected",
            extra={"subscribers": len(self._subscribers)},
        )

    async def _send(self, websocket: WebSocket, event: TaskUpdatedEvent) -> bool:
        try:
            await asyncio.wait_for(
                websocket.send_json(event.to_wire()),
                timeout=self.send_timeout,
            )
            return True
        except asyncio.TimeoutError:
            logger.warning(
                "Dropping subscriber after send timed out",
                extra={"task_id": event.task_id, "timeout_seconds": self.send_timeout},
            )
        except Exception as e:
            logger.warning(
                "Dropping subscriber after failed send",
                extra={"task_id": event.task_id, "error": str(e)},
            )
        return False

    async def publish(self, event: TaskUpdatedEvent) -> None:
        async with self._lock:
            subscribers = list(self._subscribers)

        results = await asyncio.gather(
            *(self._send(websocket, event) for websocket in subscribers)
        )
        failed = [ws for ws, delivered in zip(subscribers, results) if not delivered]

        if failed:
            async with self._lock:
                self._subscribers.difference_update(failed)

        logger.debug(
            "Broadcast task update",
            extra={
                "task_id": event.task_id,
                "delivered": len(subscribers) - len(failed),
            },
        )

    async def close(self) -> None:
        async with self._lock:
            subscribers = list(self._subscribers)
            self._subscribers.clear()

        for websocket in subscribers:
            try:
                await websocket.close()
            except Exception as e:
                logger.debug(
                    "Failed to close subscriber",
                    extra={"error": str(e)},
                )


class LoggingBroadcaster(EventBroadcaster):
    """Broadcaster that records task updates as structured log entries."""

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger

    async def publish(self, event: TaskUpdatedEvent) -> None:
        self._logger.info(
            "Task update: %s is now %s",
            event.task_id,
            event.status.value,
            extra=event.to_log_dict(),
        )


class CompositeBroadcaster(EventBroadcaster):
    """Broadcaster that delegates to multiple child broadcasters.

    Failures in one broadcaster do not affect the others; each is called
    independently and errors are logged but not propagated.

    Example:
        >>> composite = CompositeBroadcaster([hub, LoggingBroadcaster()])
        >>> await composite.publish(event)  # Publishes to both
    """

    def __init__(self, broadcasters: Optional[List[EventBroadcaster]] = None):
        self._broadcasters: List[EventBroadcaster] = broadcasters or []

    async def publish(self, event: TaskUpdatedEvent) -> None:
        for broadcaster in self._broadcasters:
            try:
                await broadcaster.publish(event)
            except Exception as e:
                logger.error(
                    "Failed to publish event to %s: %s",
                    type(broadcaster).__name__,
                    str(e),
                    extra={
                        "broadcaster_type": type(broadcaster).__name__,
                        "task_id": event.task_id,
                        "error": str(e),
                    },
                )

    async def close(self) -> None:
        for broadcaster in self._broadcasters:
            try:
                await broadcaster.close()
            except Exception as e:
                logger.error(
                    "Failed to close broadcaster %s: %s",
                    type(broadcaster).__name__,
                    str(e),
                )


class NullBroadcaster(EventBroadcaster):
    """Broadcaster that discards all events."""

    async def publish(self, event: TaskUpdatedEvent) -> None:
        pass
