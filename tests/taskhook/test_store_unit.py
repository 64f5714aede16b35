"""Unit tests for the in-memory task store and the resolvers."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.taskhook.state import (
    InMemoryTaskStore,
    RepositoryResolver,
    Task,
    TaskNotFoundError,
    TaskResolver,
    TaskStatus,
    TaskStore,
)
from src.taskhook.state.repository import DatabaseError


def run_async(coro):
    return asyncio.run(coro)


def _task(display_id="TASK-1", repos=("100",), status=TaskStatus.IN_PROGRESS) -> Task:
    return Task(
        id=f"id-{display_id}",
        display_id=display_id,
        status=status,
        linked_repositories=repos,
    )


class TestTaskModel:
    def test_numeric_repository_ids_are_strings(self):
        task = Task(id="t", display_id="T-1", linked_repositories=[100, "200"])

        assert task.linked_repositories == frozenset({"100", "200"})
        assert task.is_linked_to(100)
        assert task.is_linked_to("200")
        assert not task.is_linked_to("300")

    def test_defaults(self):
        task = Task(id="t", display_id="T-1")

        assert task.status == TaskStatus.BACKLOG
        assert task.linked_repositories == frozenset()
        assert not task.is_completed


class TestInMemoryTaskStore:
    def test_satisfies_protocol(self, store):
        assert isinstance(store, TaskStore)

    def test_store_without_health_check_is_not_a_task_store(self):
        class PartialStore:
            async def get_task_by_display_id(self, display_id):
                return None

            async def save_task_status(self, task):
                return task

            async def upsert_repository(self, external_id, name):
                return None

            async def get_repository(self, external_id):
                return None

            async def link_repository(self, display_id, external_id):
                return None

        assert not isinstance(PartialStore(), TaskStore)
        assert run_async(InMemoryTaskStore().health_check()) is True

    def test_get_missing_task(self, store):
        assert run_async(store.get_task_by_display_id("NOPE-1")) is None

    def test_save_task_status_updates_only_status(self, store):
        original = _task()
        store.add_task(original)

        changed = original.model_copy(
            update={"status": TaskStatus.COMPLETED, "title": "ignored"}
        )
        saved = run_async(store.save_task_status(changed))

        assert saved.status == TaskStatus.COMPLETED
        assert saved.title is None
        assert saved.linked_repositories == original.linked_repositories

    def test_save_task_status_rejects_replaced_task(self, store):
        store.add_task(_task())
        impostor = Task(id="other-id", display_id="TASK-1", status=TaskStatus.COMPLETED)

        with pytest.raises(TaskNotFoundError):
            run_async(store.save_task_status(impostor))

    def test_upsert_repository_creates_then_renames(self, store):
        first = run_async(store.upsert_repository("100", "acme/widgets"))
        second = run_async(store.upsert_repository("100", "acme/gadgets"))

        assert first.name == "acme/widgets"
        assert second.name == "acme/gadgets"
        assert second.updated_at >= first.updated_at
        stored = run_async(store.get_repository("100"))
        assert stored.name == "acme/gadgets"

    def test_repeated_upserts_keep_one_record(self, store):
        for _ in range(5):
            run_async(store.upsert_repository("100", "acme/widgets"))

        assert len(store._repositories) == 1

    def test_link_repository(self, store):
        store.add_task(_task(repos=()))

        linked = run_async(store.link_repository("TASK-1", 555))

        assert linked.is_linked_to("555")

    def test_link_repository_missing_task(self, store):
        with pytest.raises(TaskNotFoundError):
            run_async(store.link_repository("NOPE-1", "1"))

    def test_clear(self, store):
        store.add_task(_task())
        run_async(store.upsert_repository("1", "a/b"))

        store.clear()

        assert run_async(store.get_task_by_display_id("TASK-1")) is None
        assert run_async(store.get_repository("1")) is None
        assert run_async(store.health_check()) is True


class TestRepositoryResolver:
    def test_upsert(self, store):
        repository = run_async(RepositoryResolver(store).upsert("100", "acme/widgets"))

        assert repository.external_id == "100"

    def test_upsert_failure_is_swallowed(self):
        store = AsyncMock()
        store.upsert_repository.side_effect = DatabaseError("connection lost")

        assert run_async(RepositoryResolver(store).upsert("100", "acme/widgets")) is None


class TestTaskResolver:
    def test_resolves_linked_task(self, store):
        store.add_task(_task(repos=("100",)))

        task = run_async(TaskResolver(store).resolve("TASK-1", "100"))

        assert task is not None
        assert task.display_id == "TASK-1"

    def test_missing_task_is_none(self, store):
        assert run_async(TaskResolver(store).resolve("TASK-1", "100")) is None

    def test_task_linked_elsewhere_is_none(self, store):
        store.add_task(_task(repos=("200",)))

        assert run_async(TaskResolver(store).resolve("TASK-1", "100")) is None

    def test_store_errors_propagate(self):
        store = AsyncMock()
        store.get_task_by_display_id.side_effect = DatabaseError("down")

        with pytest.raises(DatabaseError):
            run_async(TaskResolver(store).resolve("TASK-1", "100"))
