"""Webhook receiver driving the commit-to-completion pipeline.

Each inbound delivery moves through:
Received → Verified → Dispatched → (Ignored | Processed) → Acknowledged.

For a push, the pushing repository is upserted once, then every commit
is handled sequentially in delivery order:
classify → resolve task → complete task → broadcast.

Failure policy per commit:
- Classification errors and timeouts are treated as "no match"
- Resolution misses are logged at info level
- Persistence failures are logged and the next commit is processed
Only signature rejection (401) and unexpected faults (500) change the
HTTP response; mutations applied before a fault are not rolled back.

Source:
- src/taskhook/webhook/signature.py (check_signature)
- src/taskhook/webhook/handler.py (WebhookHandler)
- src/taskhook/classifier/agent.py (Classifier)
- src/taskhook/state/resolver.py (RepositoryResolver, TaskResolver)
- src/taskhook/state/machine.py (TaskStateMachine)
- src/taskhook/events/emitter.py (EventBroadcaster)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from src.taskhook.classifier.agent import Classifier
from src.taskhook.classifier.models import CommitClassification
from src.taskhook.events.emitter import EventBroadcaster
from src.taskhook.events.metrics import WebhookMetrics, get_metrics
from src.taskhook.events.models import TaskUpdatedEvent
from src.taskhook.state.machine import TaskNotFoundError, TaskStateMachine, TaskStore
from src.taskhook.state.models import Task
from src.taskhook.state.repository import DatabaseError
from src.taskhook.state.resolver import RepositoryResolver, TaskResolver
from src.taskhook.webhook.handler import WebhookHandler
from src.taskhook.webhook.models import CommitInfo, PushEvent, WebhookEventType
from src.taskhook.webhook.signature import SignatureCheck, check_signature

logger = logging.getLogger(__name__)


# Store failures that are recoverable for a single commit
PERSISTENCE_ERRORS = (DatabaseError, OSError)

# Event header values allowed as metric labels; anything else is "other"
KNOWN_EVENTS = frozenset(e.value for e in WebhookEventType)


class CommitOutcome(str, Enum):
    """What happened to a single commit of a push."""

    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"
    NO_MATCH = "no_match"
    CLASSIFICATION_FAILED = "classification_failed"
    NOT_RESOLVED = "not_resolved"
    PERSISTENCE_FAILED = "persistence_failed"


class DeliveryOutcome(str, Enum):
    """Terminal state of one inbound delivery."""

    REJECTED = "rejected"
    PONG = "pong"
    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass
class WebhookResponse:
    """HTTP status and JSON body to return to the webhook sender."""

    status_code: int
    body: Dict[str, Any]
    outcome: DeliveryOutcome
    commit_outcomes: List[CommitOutcome] = field(default_factory=list)


class WebhookReceiver:
    """Orchestrates one webhook delivery end to end.

    All collaborators are injected. The broadcaster is an explicit
    dependency rather than shared application state.

    Attributes:
        repository_resolver: Upserts the pushing repository.
        task_resolver: Maps display IDs to repository-linked tasks.
        state_machine: Applies the completion transition.
        classifier: Classifies commit messages.
        broadcaster: Publishes completions to real-time subscribers.
        webhook_secret: Shared HMAC secret; empty skips verification.
        classifier_timeout: Upper bound in seconds for one classification.
        handler: Parses push payloads.
        metrics: Prometheus metrics.
    """

    def __init__(
        self,
        repository_resolver: RepositoryResolver,
        task_resolver: TaskResolver,
        state_machine: TaskStateMachine,
        classifier: Classifier,
        broadcaster: EventBroadcaster,
        webhook_secret: Optional[str] = None,
        classifier_timeout: float = 10.0,
        handler: Optional[WebhookHandler] = None,
        metrics: Optional[WebhookMetrics] = None,
    ):
        self.repository_resolver = repository_resolver
        self.task_resolver = task_resolver
        self.state_machine = state_machine
        self.classifier = classifier
        self.broadcaster = broadcaster
        self.webhook_secret = webhook_secret
        self.classifier_timeout = classifier_timeout
        self.handler = handler or WebhookHandler()
        self.metrics = metrics or get_metrics()

    async def handle(
        self,
        event_type: Optional[str],
        raw_body: bytes,
        signature_header: Optional[str],
    ) -> WebhookResponse:
        """Verify, dispatch and process a single delivery.

        Args:
            event_type: Value of the provider's event header.
            raw_body: The raw, unparsed request body.
            signature_header: Value of the X-Hub-Signature-256 header.

        Returns:
            WebhookResponse with the HTTP status and JSON body.
        """
        event_name = (event_type or "").strip().lower()

        check = check_signature(self.webhook_secret, raw_body, signature_header)
        if check == SignatureCheck.MISSING:
            return self._respond(
                event_name, 401, {"error": "No signature found"}, DeliveryOutcome.REJECTED
            )
        if check == SignatureCheck.INVALID:
            return self._respond(
                event_name, 401, {"error": "Invalid signature"}, DeliveryOutcome.REJECTED
            )

        try:
            if event_name == WebhookEventType.PING.value:
                return self._respond(
                    event_name, 200, {"message": "Pong"}, DeliveryOutcome.PONG
                )

            if event_name == WebhookEventType.PUSH.value:
                payload = self.handler.decode_body(raw_body)
                event = self.handler.parse_push_event(payload)
                outcomes = await self.process_push(event)
                response = self._respond(
                    event_name, 200, {"success": True}, DeliveryOutcome.PROCESSED
                )
                response.commit_outcomes = outcomes
                return response

            logger.info("Ignoring event", extra={"event_type": event_name})
            return self._respond(
                event_name, 200, {"message": "Ignored event"}, DeliveryOutcome.IGNORED
            )

        except Exception:
            logger.exception(
                "Unexpected error processing webhook",
                extra={"event_type": event_name},
            )
            return self._respond(
                event_name, 500, {"message": "Server error"}, DeliveryOutcome.FAILED
            )

    async def process_push(self, event: PushEvent) -> List[CommitOutcome]:
        """Upsert the repository, then process commits one at a time in order.

        Commit N is fully processed, including its task write and
        broadcast, before commit N+1 is classified.

        Args:
            event: Parsed push event.

        Returns:
            The outcome of each commit, in delivery order.
        """
        logger.info(
            "Received push",
            extra={
                "repository_id": event.repository_id,
                "repository_name": event.repository_name,
                "commit_count": len(event.commits),
            },
        )

        await self.repository_resolver.upsert(
            event.repository_id, event.repository_name
        )

        outcomes = []
        for commit in event.commits:
            outcome = await self._process_commit(event, commit)
            outcomes.append(outcome)
        return outcomes

    async def _process_commit(
        self, event: PushEvent, commit: CommitInfo
    ) -> CommitOutcome:
        classification = await self._classify(commit.message)
        if classification is None:
            return CommitOutcome.CLASSIFICATION_FAILED

        if not classification.is_actionable:
            return CommitOutcome.NO_MATCH

        display_id = classification.task_display_id
        logger.info(
            "Commit marks task as completed",
            extra={"display_id": display_id, "commit": commit.sha},
        )

        try:
            task = await self.task_resolver.resolve(display_id, event.repository_id)
        except PERSISTENCE_ERRORS as exc:
            logger.error(
                "Failed to look up task",
                extra={"display_id": display_id, "error": str(exc)},
            )
            return CommitOutcome.PERSISTENCE_FAILED

        if task is None:
            self.metrics.record_resolution_miss()
            return CommitOutcome.NOT_RESOLVED

        return await self._complete(task, event, commit)

    async def _complete(
        self, task: Task, event: PushEvent, commit: CommitInfo
    ) -> CommitOutcome:
        already_completed = task.is_completed

        try:
            completed = await self.state_machine.complete(task)
        except TaskNotFoundError:
            logger.info(
                "Task disappeared before it could be completed",
                extra={"display_id": task.display_id},
            )
            self.metrics.record_resolution_miss()
            return CommitOutcome.NOT_RESOLVED
        except PERSISTENCE_ERRORS as exc:
            logger.error(
                "Failed to update task",
                extra={"display_id": task.display_id, "error": str(exc)},
            )
            return CommitOutcome.PERSISTENCE_FAILED

        if not already_completed:
            self.metrics.record_task_completed()
            logger.info(
                "Task completed",
                extra={"display_id": completed.display_id},
            )

        # Only reached once the status write has been applied
        await self._broadcast(
            TaskUpdatedEvent(
                task_id=completed.display_id,
                status=completed.status,
                commit_message=commit.message,
                repository_id=event.repository_id,
            )
        )

        if already_completed:
            return CommitOutcome.ALREADY_COMPLETED
        return CommitOutcome.COMPLETED

    async def _classify(self, message: str) -> Optional[CommitClassification]:
        """Classify one commit message, bounded by the classifier timeout.

        Only the message is sent. The display ID comes out of the
        classification, so no task title or description is known yet.

        Returns:
            The classification, or None if the classifier failed, timed out
            or returned something other than a CommitClassification.
        """
        started = time.monotonic()
        try:
            result = await asyncio.wait_for(
                self.classifier.classify(message),
                timeout=self.classifier_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Commit classification timed out",
                extra={
                    "timeout_seconds": self.classifier_timeout,
                    "message_preview": message[:100],
                },
            )
            self.metrics.record_classification("failed", time.monotonic() - started)
            return None
        except Exception as exc:
            logger.warning(
                "Commit classification failed",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "message_preview": message[:100],
                },
            )
            self.metrics.record_classification("failed", time.monotonic() - started)
            return None

        elapsed = time.monotonic() - started

        if not isinstance(result, CommitClassification):
            logger.warning(
                "Classifier returned an unexpected result",
                extra={"result_type": type(result).__name__},
            )
            self.metrics.record_classification("failed", elapsed)
            return None

        self.metrics.record_classification(
            "match" if result.is_actionable else "no_match", elapsed
        )
        return result

    async def _broadcast(self, event: TaskUpdatedEvent) -> None:
        try:
            await self.broadcaster.publish(event)
        except Exception as exc:
            logger.error(
                "Failed to broadcast task update",
                extra={"task_id": event.task_id, "error": str(exc)},
            )

    def _respond(
        self,
        event_name: str,
        status_code: int,
        body: Dict[str, Any],
        outcome: DeliveryOutcome,
    ) -> WebhookResponse:
        self.metrics.record_delivery(_event_label(event_name), outcome.value)
        return WebhookResponse(status_code=status_code, body=body, outcome=outcome)


def _event_label(event_name: str) -> str:
    return event_name if event_name in KNOWN_EVENTS else "other"


def create_webhook_receiver(
    store: TaskStore,
    classifier: Classifier,
    broadcaster: EventBroadcaster,
    webhook_secret: Optional[str] = None,
    classifier_timeout: float = 10.0,
    metrics: Optional[WebhookMetrics] = None,
) -> WebhookReceiver:
    """Wire a WebhookReceiver around a single task store.

    Args:
        store: Persistence collaborator for tasks and repositories.
        classifier: Commit classifier.
        broadcaster: Real-time broadcaster.
        webhook_secret: Shared HMAC secret; empty skips verification.
        classifier_timeout: Upper bound in seconds for one classification.
        metrics: Optional metrics instance.

    Returns:
        Fully wired WebhookReceiver.
    """
    return WebhookReceiver(
        repository_resolver=RepositoryResolver(store),
        task_resolver=TaskResolver(store),
        state_machine=TaskStateMachine(store),
        classifier=classifier,
        broadcaster=broadcaster,
        webhook_secret=webhook_secret,
        classifier_timeout=classifier_timeout,
        metrics=metrics,
    )
