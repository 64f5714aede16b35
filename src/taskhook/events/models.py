"""Real-time event models.

Subscribers receive one message per completed task:

    {"taskId": "<displayId>", "status": "Completed", "commitMessage": "<message>"}

The event is fire-and-forget: it is neither acknowledged, retried nor
persisted. Under concurrent deliveries the same completion may be
published more than once, so subscribers must treat it as idempotent.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from src.taskhook.state.models import TaskStatus


TASK_UPDATED = "taskUpdated"


class TaskUpdatedEvent(BaseModel):
    """A task status change caused by a commit.

    Attributes:
        task_id: Display ID of the task.
        status: The task's new status.
        commit_message: Message of the commit that triggered the change.
        repository_id: External ID of the pushing repository.
        timestamp: When the event was created (UTC).
    """

    task_id: str = Field(
        ...,
        min_length=1,
        description="Display ID of the updated task",
    )

    status: TaskStatus = Field(
        default=TaskStatus.COMPLETED,
        description="The task's new status",
    )

    commit_message: str = Field(
        default="",
        description="Message of the triggering commit",
    )

    repository_id: Optional[str] = Field(
        default=None,
        description="External ID of the pushing repository",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event was created (UTC timezone)",
    )

    def to_wire(self) -> Dict[str, Any]:
        """Payload sent to real-time subscribers."""
        return {
            "taskId": self.task_id,
            "status": self.status.value,
            "commitMessage": self.commit_message,
        }

    def to_log_dict(self) -> Dict[str, Any]:
        """Flat dictionary for structured logging."""
        return {
            "event_name": TASK_UPDATED,
            "task_id": self.task_id,
            "status": self.status.value,
            "repository_id": self.repository_id,
            "timestamp": self.timestamp.isoformat(),
        }
