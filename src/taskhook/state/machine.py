"""Task state machine and persistence contract.

This module implements the TaskStateMachine that applies the single
transition the commit pipeline is allowed to make: moving a task into
Completed. It also defines the TaskStore protocol the pipeline uses to
read and write task and repository records.

The state machine:
- Treats an already-completed task as an idempotent no-op
- Never downgrades a status and never sets any status other than Completed
- Persists the new status before returning, so callers may broadcast
  the result knowing it has been durably applied
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Protocol, runtime_checkable

from src.taskhook.state.models import (
    Repository,
    Task,
    TaskStatus,
    is_valid_transition,
)


logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """Raised when a transition other than the forward edge into Completed is requested.

    Attributes:
        from_status: The task's current status.
        to_status: The attempted target status.
        message: Human-readable error message.
    """

    def __init__(
        self,
        from_status: TaskStatus,
        to_status: TaskStatus,
        message: Optional[str] = None,
    ):
        self.from_status = from_status
        self.to_status = to_status
        self.message = message or (
            f"Invalid transition from {from_status.value} to {to_status.value}"
        )
        super().__init__(self.message)


class TaskNotFoundError(Exception):
    """Raised when a status write targets a task that does not exist.

    Attributes:
        display_id: The display ID of the missing task.
    """

    def __init__(self, display_id: str):
        self.display_id = display_id
        super().__init__(f"Task not found: {display_id}")


@runtime_checkable
class TaskStore(Protocol):
    """Protocol defining the persistence collaborator of the pipeline.

    Each method is atomic for the single record it touches. The pipeline
    never relies on transactions spanning more than one call.
    """

    async def get_task_by_display_id(self, display_id: str) -> Optional[Task]:
        """Look up a task by its display ID.

        Returns:
            The task with its linked repositories, or None if not found.
        """
        ...

    async def save_task_status(self, task: Task) -> Task:
        """Persist ``task.status`` and ``task.updated_at`` for ``task.id``.

        Returns:
            The task as stored.

        Raises:
            TaskNotFoundError: If the task no longer exists.
        """
        ...

    async def upsert_repository(self, external_id: str, name: str) -> Repository:
        """Create the repository, or update the name of an existing one.

        Returns:
            The stored repository.
        """
        ...

    async def get_repository(self, external_id: str) -> Optional[Repository]:
        """Look up a repository by external ID."""
        ...

    async def link_repository(self, display_id: str, external_id: str) -> Task:
        """Add a repository to a task's linked repositories.

        Raises:
            TaskNotFoundError: If the task does not exist.
        """
        ...

    async def health_check(self) -> bool:
        """Whether the store can currently serve requests."""
        ...


class TaskStateMachine:
    """Applies the completion transition to tasks.

    The only transition this state machine applies is
    ``<any non-terminal status> → Completed``. Completing a task that is
    already Completed returns it unchanged, so redelivered webhooks and
    reprocessed commits are harmless.

    Attributes:
        store: The task store used for persistence.

    Example:
        >>> machine = TaskStateMachine(store)
        >>> task = await machine.complete(task)
        >>> task.status
        <TaskStatus.COMPLETED: 'Completed'>
    """

    def __init__(self, store: TaskStore):
        self.store = store

    async def complete(self, task: Task) -> Task:
        """Move a task into Completed and persist it.

        Args:
            task: The task to complete.

        Returns:
            The completed task. If it was already Completed, the same
            task is returned without touching the store.

        Raises:
            InvalidTransitionError: If the task's status has no edge into
                Completed (cannot happen for the statuses defined today).
            TaskNotFoundError: If the task vanished before the write.
        """
        if task.is_completed:
            logger.info(
                "Task already completed, nothing to do",
                extra={"display_id": task.display_id},
            )
            return task

        return await self._apply(task, TaskStatus.COMPLETED)

    async def _apply(self, task: Task, to_status: TaskStatus) -> Task:
        from_status = task.status

        if not is_valid_transition(from_status, to_status):
            logger.warning(
                "Invalid task transition attempted",
                extra={
                    "display_id": task.display_id,
                    "from_status": from_status.value,
                    "to_status": to_status.value,
                },
            )
            raise InvalidTransitionError(from_status, to_status)

        updated = task.model_copy(
            update={
                "status": to_status,
                "updated_at": datetime.now(timezone.utc),
            }
        )

        logger.info(
            "Transitioning task",
            extra={
                "display_id": task.display_id,
                "from_status": from_status.value,
                "to_status": to_status.value,
            },
        )

        return await self.store.save_task_status(updated)
