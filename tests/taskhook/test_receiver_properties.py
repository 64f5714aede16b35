"""Property-based tests for end-to-end push processing.

Drives the WebhookReceiver with the keyword classifier and the in-memory
store to check:
- Tenant isolation: a push never completes a task linked only elsewhere
- Idempotence: redelivering a push leaves the same final statuses
- Ordering: commits are processed and broadcast in delivery order
- Fail-open: a failing classification never blocks later commits

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 50 per property test
"""

import asyncio
import json
from typing import Dict, List
from unittest.mock import AsyncMock

from hypothesis import assume, given, settings, strategies as st
from prometheus_client import CollectorRegistry

from src.taskhook.classifier.keywords import KeywordCommitClassifier, indicates_completion
from src.taskhook.classifier.models import CommitClassification
from src.taskhook.events.metrics import WebhookMetrics
from src.taskhook.receiver import CommitOutcome, WebhookReceiver, create_webhook_receiver
from src.taskhook.state import InMemoryTaskStore, Task, TaskStatus


def run_async(coro):
    return asyncio.run(coro)


# =============================================================================
# Hypothesis Strategies
# =============================================================================


task_numbers = st.integers(min_value=1, max_value=5)
repo_ids = st.integers(min_value=1, max_value=10**9)
open_statuses = st.sampled_from([s for s in TaskStatus if s != TaskStatus.COMPLETED])


@st.composite
def commit_messages(draw: st.DrawFn) -> str:
    """Commit messages that may or may not complete a TASK-N."""
    number = draw(task_numbers)
    verb = draw(st.sampled_from(["fix", "closes", "done", "resolved", "wip", "update", "refactor"]))
    return f"{verb} TASK-{number}"


def _push_body(repo_id: int, messages: List[str]) -> bytes:
    return json.dumps(
        {
            "repository": {"id": repo_id, "full_name": f"org/repo-{repo_id}"},
            "commits": [{"message": m} for m in messages],
        }
    ).encode()


def _build(store, classifier=None, broadcaster=None) -> WebhookReceiver:
    return create_webhook_receiver(
        store=store,
        classifier=classifier or KeywordCommitClassifier(),
        broadcaster=broadcaster or AsyncMock(),
        webhook_secret="",
        metrics=WebhookMetrics(registry=CollectorRegistry()),
    )


def _seed(store: InMemoryTaskStore, linked_repo: int, statuses: List[TaskStatus]) -> None:
    for index, status in enumerate(statuses, start=1):
        store.add_task(
            Task(
                id=f"id-{index}",
                display_id=f"TASK-{index}",
                status=status,
                linked_repositories=[linked_repo],
            )
        )


def _statuses(store: InMemoryTaskStore, count: int) -> Dict[str, TaskStatus]:
    return {
        f"TASK-{i}": run_async(store.get_task_by_display_id(f"TASK-{i}")).status
        for i in range(1, count + 1)
    }


# =============================================================================
# Properties
# =============================================================================


@settings(max_examples=50, deadline=None)
@given(
    owner_repo=repo_ids,
    pushing_repo=repo_ids,
    statuses=st.lists(open_statuses, min_size=5, max_size=5),
    messages=st.lists(commit_messages(), min_size=1, max_size=8),
)
def test_push_from_other_repository_never_completes_task(
    owner_repo, pushing_repo, statuses, messages
):
    assume(owner_repo != pushing_repo)
    store = InMemoryTaskStore()
    _seed(store, owner_repo, statuses)
    broadcaster = AsyncMock()

    response = run_async(
        _build(store, broadcaster=broadcaster).handle("push", _push_body(pushing_repo, messages), None)
    )

    assert response.status_code == 200
    assert _statuses(store, 5) == {f"TASK-{i}": s for i, s in enumerate(statuses, start=1)}
    broadcaster.publish.assert_not_called()


@settings(max_examples=50, deadline=None)
@given(
    repo=repo_ids,
    statuses=st.lists(open_statuses, min_size=5, max_size=5),
    messages=st.lists(commit_messages(), min_size=0, max_size=8),
)
def test_redelivery_yields_same_final_statuses(repo, statuses, messages):
    store = InMemoryTaskStore()
    _seed(store, repo, statuses)
    receiver = _build(store)
    body = _push_body(repo, messages)

    first = run_async(receiver.handle("push", body, None))
    after_once = _statuses(store, 5)
    second = run_async(receiver.handle("push", body, None))

    assert first.status_code == second.status_code == 200
    assert _statuses(store, 5) == after_once
    assert CommitOutcome.COMPLETED not in second.commit_outcomes
    assert CommitOutcome.PERSISTENCE_FAILED not in second.commit_outcomes


@settings(max_examples=50, deadline=None)
@given(repo=repo_ids, messages=st.lists(commit_messages(), min_size=1, max_size=8))
def test_commits_are_classified_and_broadcast_in_delivery_order(repo, messages):
    # Distinct messages so each broadcast maps back to one commit
    messages = [f"{m} (commit {i})" for i, m in enumerate(messages)]
    store = InMemoryTaskStore()
    _seed(store, repo, [TaskStatus.IN_PROGRESS] * 5)
    classifier = KeywordCommitClassifier()
    seen: List[str] = []
    original = classifier.classify

    async def recording_classify(message, task_title=None, task_description=None):
        seen.append(message)
        return await original(message)

    classifier.classify = recording_classify
    broadcaster = AsyncMock()

    run_async(_build(store, classifier, broadcaster).handle("push", _push_body(repo, messages), None))

    assert seen == messages
    broadcast_messages = [c.args[0].commit_message for c in broadcaster.publish.await_args_list]
    assert broadcast_messages == [m for m in messages if indicates_completion(m)]
    positions = [messages.index(m) for m in broadcast_messages]
    assert positions == sorted(positions)


@settings(max_examples=50, deadline=None)
@given(repo=repo_ids, first_completes=st.booleans())
def test_later_commit_for_same_task_is_applied_last(repo, first_completes):
    store = InMemoryTaskStore()
    _seed(store, repo, [TaskStatus.IN_REVIEW])
    classifier = AsyncMock()
    classifier.classify.side_effect = [
        CommitClassification(task_display_id="TASK-1", indicates_completion=first_completes),
        CommitClassification(task_display_id="TASK-1", indicates_completion=True),
    ]
    broadcaster = AsyncMock()

    response = run_async(
        _build(store, classifier, broadcaster).handle(
            "push", _push_body(repo, ["first TASK-1", "second TASK-1"]), None
        )
    )

    assert _statuses(store, 1) == {"TASK-1": TaskStatus.COMPLETED}
    last_event = broadcaster.publish.await_args_list[-1].args[0]
    assert last_event.commit_message == "second TASK-1"
    expected_second = (
        CommitOutcome.ALREADY_COMPLETED if first_completes else CommitOutcome.COMPLETED
    )
    assert response.commit_outcomes[1] == expected_second


@settings(max_examples=50, deadline=None)
@given(
    repo=repo_ids,
    failing=st.lists(st.booleans(), min_size=1, max_size=5),
)
def test_failed_classifications_do_not_block_later_commits(repo, failing):
    store = InMemoryTaskStore()
    _seed(store, repo, [TaskStatus.READY] * len(failing))
    classifier = AsyncMock()
    classifier.classify.side_effect = [
        RuntimeError("classifier down") if fails
        else CommitClassification(task_display_id=f"TASK-{i}", indicates_completion=True)
        for i, fails in enumerate(failing, start=1)
    ]
    messages = [f"commit {i}" for i in range(1, len(failing) + 1)]

    response = run_async(_build(store, classifier).handle("push", _push_body(repo, messages), None))

    assert response.status_code == 200
    for i, fails in enumerate(failing, start=1):
        status = run_async(store.get_task_by_display_id(f"TASK-{i}")).status
        assert status == (TaskStatus.READY if fails else TaskStatus.COMPLETED)
