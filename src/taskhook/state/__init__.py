"""Task state, persistence and resolution.

This module manages the records the completion pipeline touches:
- Task and Repository models with the task lifecycle statuses
- The TaskStore persistence protocol, with in-memory and PostgreSQL stores
- Repository upserts and repository-scoped task resolution
- The state machine that applies the single forward edge into Completed
"""

from src.taskhook.state.models import (
    Repository,
    Task,
    TaskStatus,
    VALID_TRANSITIONS,
    is_terminal_status,
    is_valid_transition,
)
from src.taskhook.state.machine import (
    InvalidTransitionError,
    TaskNotFoundError,
    TaskStateMachine,
    TaskStore,
)
from src.taskhook.state.memory import InMemoryTaskStore
from src.taskhook.state.repository import (
    DatabaseError,
    PostgresTaskStore,
)
from src.taskhook.state.resolver import RepositoryResolver, TaskResolver

__all__ = [
    # Models
    "Repository",
    "Task",
    "TaskStatus",
    "VALID_TRANSITIONS",
    "is_terminal_status",
    "is_valid_transition",
    # State machine
    "InvalidTransitionError",
    "TaskNotFoundError",
    "TaskStateMachine",
    "TaskStore",
    # Stores
    "DatabaseError",
    "InMemoryTaskStore",
    "PostgresTaskStore",
    # Resolution
    "RepositoryResolver",
    "TaskResolver",
]
