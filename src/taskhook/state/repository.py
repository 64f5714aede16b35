"""PostgreSQL task store.

This module implements the TaskStore protocol using asyncpg for async
PostgreSQL access. It provides:
- Connection pooling for production use
- Single-statement, per-record atomic writes
- Repository upserts keyed by the host-assigned external ID
- Linked repositories read from the task_repositories join table

Source:
- migrations/001_tasks.sql (schema definition)
- src/taskhook/state/machine.py (TaskStore protocol)
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

import asyncpg

from src.taskhook.state.machine import TaskNotFoundError
from src.taskhook.state.models import Repository, Task, TaskStatus


logger = logging.getLogger(__name__)


_SELECT_TASK = """
    SELECT
        t.id,
        t.display_id,
        t.title,
        t.description,
        t.status,
        t.updated_at,
        COALESCE(
            array_agg(tr.external_repository_id)
                FILTER (WHERE tr.external_repository_id IS NOT NULL),
            '{}'
        ) AS linked_repositories
    FROM tasks t
    LEFT JOIN task_repositories tr ON tr.task_id = t.id
    WHERE t.display_id = $1
    GROUP BY t.id
"""


class DatabaseError(Exception):
    """Raised when a database operation fails.

    This exception wraps underlying database errors to provide
    a consistent interface for error handling.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _rows_affected(status: str) -> int:
    # asyncpg returns command tags such as "UPDATE 1"
    return int(status.split()[-1])


class PostgresTaskStore:
    """PostgreSQL implementation of the TaskStore protocol.

    The store expects the schema from migrations/001_tasks.sql to be
    applied before use.

    Attributes:
        connection_string: PostgreSQL connection URL.
        min_pool_size: Minimum connections in pool.
        max_pool_size: Maximum connections in pool.

    Example:
        >>> async with PostgresTaskStore("postgresql://...") as store:
        ...     task = await store.get_task_by_display_id("TASK-07")
    """

    def __init__(
        self,
        connection_string: str,
        min_pool_size: int = 2,
        max_pool_size: int = 10,
    ):
        self.connection_string = connection_string
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool, raising if not connected.

        Raises:
            DatabaseError: If the pool is not initialized.
        """
        if self._pool is None:
            raise DatabaseError(
                "Database pool not initialized. Call connect() first."
            )
        return self._pool

    async def connect(self) -> None:
        """Initialize the connection pool.

        Raises:
            DatabaseError: If connection fails.
        """
        if self._pool is not None:
            logger.warning("Connection pool already initialized")
            return

        try:
            logger.info(
                "Connecting to PostgreSQL",
                extra={
                    "min_pool_size": self.min_pool_size,
                    "max_pool_size": self.max_pool_size,
                },
            )
            self._pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
            )
            logger.info("PostgreSQL connection pool established")
        except Exception as e:
            logger.error(
                "Failed to connect to PostgreSQL",
                extra={"error": str(e)},
            )
            raise DatabaseError(
                f"Failed to connect to PostgreSQL: {e}",
                original_error=e,
            ) from e

    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            logger.info("Closing PostgreSQL connection pool")
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> "PostgresTaskStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[asyncpg.Connection]:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    @staticmethod
    def _task_from_row(row: Any) -> Task:
        return Task(
            id=str(row["id"]),
            display_id=row["display_id"],
            title=row["title"],
            description=row["description"],
            status=TaskStatus(row["status"]),
            linked_repositories=list(row["linked_repositories"] or []),
            updated_at=_utc(row["updated_at"]),
        )

    async def get_task_by_display_id(self, display_id: str) -> Optional[Task]:
        """Get a task and its linked repositories by display ID.

        Raises:
            DatabaseError: If the query fails.
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(_SELECT_TASK, display_id)
        except Exception as e:
            logger.error(
                "Failed to get task",
                extra={"display_id": display_id, "error": str(e)},
            )
            raise DatabaseError(f"Failed to get task: {e}", original_error=e) from e

        if row is None:
            return None
        return self._task_from_row(row)

    async def save_task_status(self, task: Task) -> Task:
        """Write a task's status and updated_at in a single statement.

        Raises:
            TaskNotFoundError: If no row matches the task ID.
            DatabaseError: If the update fails.
        """
        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute(
                    """
                    UPDATE tasks
                    SET status = $2, updated_at = $3
                    WHERE id = $1
                    """,
                    task.id,
                    task.status.value,
                    task.updated_at,
                )
        except Exception as e:
            logger.error(
                "Failed to save task status",
                extra={"display_id": task.display_id, "error": str(e)},
            )
            raise DatabaseError(
                f"Failed to save task status: {e}", original_error=e
            ) from e

        if _rows_affected(result) == 0:
            raise TaskNotFoundError(task.display_id)

        logger.info(
            "Saved task status",
            extra={"display_id": task.display_id, "status": task.status.value},
        )
        return task

    async def upsert_repository(self, external_id: str, name: str) -> Repository:
        """Insert a repository or update the name of an existing one.

        The external ID is never changed by an upsert.

        Raises:
            DatabaseError: If the statement fails.
        """
        now = datetime.now(timezone.utc)
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO repositories (external_id, name, created_at, updated_at)
                    VALUES ($1, $2, $3, $3)
                    ON CONFLICT (external_id)
                    DO UPDATE SET name = EXCLUDED.name, updated_at = EXCLUDED.updated_at
                    RETURNING external_id, name, updated_at
                    """,
                    external_id,
                    name,
                    now,
                )
        except Exception as e:
            logger.error(
                "Failed to upsert repository",
                extra={"external_id": external_id, "error": str(e)},
            )
            raise DatabaseError(
                f"Failed to upsert repository: {e}", original_error=e
            ) from e

        return Repository(
            external_id=row["external_id"],
            name=row["name"],
            updated_at=_utc(row["updated_at"]),
        )

    async def get_repository(self, external_id: str) -> Optional[Repository]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT external_id, name, updated_at
                    FROM repositories
                    WHERE external_id = $1
                    """,
                    external_id,
                )
        except Exception as e:
            raise DatabaseError(
                f"Failed to get repository: {e}", original_error=e
            ) from e

        if row is None:
            return None
        return Repository(
            external_id=row["external_id"],
            name=row["name"],
            updated_at=_utc(row["updated_at"]),
        )

    async def link_repository(self, display_id: str, external_id: str) -> Task:
        """Link a repository to a task.

        Raises:
            TaskNotFoundError: If the task does not exist.
            DatabaseError: If the statements fail.
        """
        try:
            async with self._transaction() as conn:
                task_id = await conn.fetchval(
                    "SELECT id FROM tasks WHERE display_id = $1",
                    display_id,
                )
                if task_id is None:
                    raise TaskNotFoundError(display_id)

                await conn.execute(
                    """
                    INSERT INTO task_repositories (task_id, external_repository_id, created_at)
                    VALUES ($1, $2, $3)
                    ON CONFLICT DO NOTHING
                    """,
                    task_id,
                    str(external_id),
                    datetime.now(timezone.utc),
                )
        except TaskNotFoundError:
            raise
        except Exception as e:
            logger.error(
                "Failed to link repository",
                extra={
                    "display_id": display_id,
                    "external_id": external_id,
                    "error": str(e),
                },
            )
            raise DatabaseError(
                f"Failed to link repository: {e}", original_error=e
            ) from e

        task = await self.get_task_by_display_id(display_id)
        if task is None:
            raise TaskNotFoundError(display_id)
        return task

    async def health_check(self) -> bool:
        """Check if the database connection is healthy."""
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception as e:
            logger.warning(
                "Database health check failed",
                extra={"error": str(e)},
            )
            return False
