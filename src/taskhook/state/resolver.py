"""Repository and task resolution for inbound pushes.

RepositoryResolver records the pushing repository; TaskResolver maps a
classified display ID to a task, constrained to tasks linked to the
pushing repository.
"""

import logging
from typing import Optional

from src.taskhook.state.machine import TaskStore
from src.taskhook.state.models import Repository, Task


logger = logging.getLogger(__name__)


class RepositoryResolver:
    """Upserts the pushing repository into the task store.

    A failed upsert is logged and swallowed: commit processing for the
    same delivery continues against whatever repository record already
    exists, if any.
    """

    def __init__(self, store: TaskStore):
        self.store = store

    async def upsert(self, external_id: str, name: str) -> Optional[Repository]:
        """Create the repository or update its name.

        Args:
            external_id: Identifier assigned by the source-control host.
            name: Human-readable full name.

        Returns:
            The stored repository, or None if persistence failed.
        """
        try:
            repository = await self.store.upsert_repository(external_id, name)
        except Exception as e:
            logger.error(
                "Failed to upsert repository, continuing without it",
                extra={
                    "external_id": external_id,
                    "repository_name": name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return None

        logger.debug(
            "Repository upserted",
            extra={"external_id": external_id, "repository_name": name},
        )
        return repository


class TaskResolver:
    """Maps a classified display ID to a task the pushing repository may complete.

    This is the tenancy boundary of the pipeline: a commit in repository A
    never resolves to a task that is only linked to repository B, even
    when the display IDs collide.
    """

    def __init__(self, store: TaskStore):
        self.store = store

    async def resolve(
        self,
        display_id: str,
        external_repository_id: str,
    ) -> Optional[Task]:
        """Resolve a display ID within the scope of a repository.

        A miss is not an error; it is logged at info level and None is
        returned so the caller moves on to the next commit.

        Args:
            display_id: Display ID reported by the classifier.
            external_repository_id: The repository the commit was pushed to.

        Returns:
            The task, or None if it does not exist or is not linked to
            the repository.

        Raises:
            Exception: Persistence errors from the store are propagated.
        """
        task = await self.store.get_task_by_display_id(display_id)

        if task is None:
            logger.info(
                "Task not found",
                extra={
                    "display_id": display_id,
                    "repository_id": external_repository_id,
                },
            )
            return None

        if not task.is_linked_to(external_repository_id):
            logger.info(
                "Task is not linked to the pushing repository",
                extra={
                    "display_id": display_id,
                    "repository_id": external_repository_id,
                    "linked_repositories": sorted(task.linked_repositories),
                },
            )
            return None

        return task
