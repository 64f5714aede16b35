"""In-memory task store for local development and tests."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from src.taskhook.state.machine import TaskNotFoundError
from src.taskhook.state.models import Repository, Task


logger = logging.getLogger(__name__)


class InMemoryTaskStore:
    """Dict-backed implementation of the TaskStore protocol.

    Every write happens under a single lock, so each record update is
    atomic just like a single-row write in PostgreSQL. Nothing survives a
    restart.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, Task] = {}
        self._repositories: Dict[str, Repository] = {}
        self._lock = asyncio.Lock()

    def add_task(self, task: Task) -> None:
        """Seed a task. Display IDs are unique; re-adding replaces the task."""
        self._tasks[task.display_id] = task

    async def get_task_by_display_id(self, display_id: str) -> Optional[Task]:
        return self._tasks.get(display_id)

    async def save_task_status(self, task: Task) -> Task:
        async with self._lock:
            existing = self._tasks.get(task.display_id)
            if existing is None or existing.id != task.id:
                raise TaskNotFoundError(task.display_id)

            stored = existing.model_copy(
                update={"status": task.status, "updated_at": task.updated_at}
            )
            self._tasks[task.display_id] = stored
            return stored

    async def upsert_repository(self, external_id: str, name: str) -> Repository:
        async with self._lock:
            now = datetime.now(timezone.utc)
            existing = self._repositories.get(external_id)
            if existing is None:
                repository = Repository(
                    external_id=external_id, name=name, updated_at=now
                )
            else:
                repository = existing.model_copy(
                    update={"name": name, "updated_at": now}
                )
            self._repositories[external_id] = repository
            return repository

    async def get_repository(self, external_id: str) -> Optional[Repository]:
        return self._repositories.get(external_id)

    async def link_repository(self, display_id: str, external_id: str) -> Task:
        async with self._lock:
            existing = self._tasks.get(display_id)
            if existing is None:
                raise TaskNotFoundError(display_id)

            linked = existing.linked_repositories | {str(external_id)}
            updated = existing.model_copy(
                update={
                    "linked_repositories": linked,
                    "updated_at": datetime.now(timezone.utc),
                }
            )
            self._tasks[display_id] = updated
            return updated

    async def health_check(self) -> bool:
        return True

    def clear(self) -> None:
        """Remove all tasks and repositories."""
        self._tasks.clear()
        self._repositories.clear()
