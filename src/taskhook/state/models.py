"""Task and repository models for the completion pipeline.

This module defines the records the pipeline reads and mutates:
- TaskStatus: Enum of task lifecycle states
- Task: A task that may be completed by a commit
- Repository: A source-control repository known to the service
- VALID_TRANSITIONS: The transitions the pipeline is allowed to apply

Task and Repository records are owned by the persistence collaborator
(see machine.TaskStore). The pipeline only upserts repositories and
advances a task's status into Completed; it never creates or deletes
tasks.

The models use Pydantic for validation, consistent with webhook/models.py
and classifier/models.py.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, field_validator


class TaskStatus(str, Enum):
    """Lifecycle states of a task.

    Informal ordering:
        Backlog → Ready → InProgress → InReview → Completed

    Completed is terminal. The commit pipeline only ever drives the
    forward edge into Completed, from any non-terminal status.

    Attributes:
        BACKLOG: Task captured but not yet scheduled.
        READY: Task scheduled and ready to be picked up.
        IN_PROGRESS: Task is being worked on.
        IN_REVIEW: Work is done and awaiting review.
        COMPLETED: Task is finished.
    """

    BACKLOG = "Backlog"
    READY = "Ready"
    IN_PROGRESS = "InProgress"
    IN_REVIEW = "InReview"
    COMPLETED = "Completed"


class Task(BaseModel):
    """A task that can be completed from a linked repository.

    Attributes:
        id: Opaque internal identifier (stable, never reused).
        display_id: Human-facing identifier such as "TASK-07". Unique; this
            is the join key produced by the commit classifier.
        title: Optional short title, used as classifier context.
        description: Optional longer description, used as classifier context.
        status: Current lifecycle status.
        linked_repositories: External identifiers of the repositories this
            task may be completed from.
        updated_at: Last mutation timestamp (UTC).
    """

    id: str = Field(
        ...,
        min_length=1,
        description="Opaque internal task identifier",
    )

    display_id: str = Field(
        ...,
        min_length=1,
        description='Human-facing task identifier, e.g. "TASK-07"',
    )

    title: Optional[str] = Field(
        default=None,
        description="Optional task title",
    )

    description: Optional[str] = Field(
        default=None,
        description="Optional task description",
    )

    status: TaskStatus = Field(
        default=TaskStatus.BACKLOG,
        description="Current lifecycle status",
    )

    linked_repositories: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="External repository identifiers this task may be completed from",
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Last mutation timestamp (UTC)",
    )

    @field_validator("linked_repositories", mode="before")
    @classmethod
    def coerce_repository_ids(cls, v):
        """Store repository identifiers as strings.

        Source-control hosts send numeric repository ids; they are compared
        as strings everywhere in the pipeline.
        """
        if v is None:
            return frozenset()
        return frozenset(str(item) for item in v)

    @property
    def is_completed(self) -> bool:
        """Whether the task has reached the terminal Completed status."""
        return self.status == TaskStatus.COMPLETED

    def is_linked_to(self, external_repository_id: str) -> bool:
        """Check whether a repository may complete this task.

        Args:
            external_repository_id: Identifier assigned by the source-control host.

        Returns:
            bool: True if the repository is in linked_repositories.
        """
        return str(external_repository_id) in self.linked_repositories


class Repository(BaseModel):
    """A source-control repository, keyed by its external identifier.

    Attributes:
        external_id: Identifier assigned by the source-control host. Unique.
        name: Human-readable full name, e.g. "acme/widgets".
        updated_at: Last mutation timestamp (UTC).
    """

    external_id: str = Field(
        ...,
        min_length=1,
        description="Identifier assigned by the source-control host",
    )

    name: str = Field(
        ...,
        description="Human-readable full repository name",
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Last mutation timestamp (UTC)",
    )


# The pipeline applies exactly one kind of edge: any non-terminal status
# into COMPLETED. COMPLETED has no outgoing transitions.
VALID_TRANSITIONS: Dict[TaskStatus, List[TaskStatus]] = {
    TaskStatus.BACKLOG: [TaskStatus.COMPLETED],
    TaskStatus.READY: [TaskStatus.COMPLETED],
    TaskStatus.IN_PROGRESS: [TaskStatus.COMPLETED],
    TaskStatus.IN_REVIEW: [TaskStatus.COMPLETED],
    TaskStatus.COMPLETED: [],
}


def is_valid_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """Check if the pipeline may move a task between two statuses.

    Args:
        from_status: The task's current status.
        to_status: The target status.

    Returns:
        bool: True if the transition is allowed.

    Example:
        >>> is_valid_transition(TaskStatus.IN_REVIEW, TaskStatus.COMPLETED)
        True
        >>> is_valid_transition(TaskStatus.COMPLETED, TaskStatus.IN_REVIEW)
        False
    """
    return to_status in VALID_TRANSITIONS.get(from_status, [])


def is_terminal_status(status: TaskStatus) -> bool:
    """Check if a status has no outgoing transitions."""
    return len(VALID_TRANSITIONS.get(status, [])) == 0
