"""HTTP and WebSocket surface tests using FastAPI's TestClient."""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.taskhook.classifier.keywords import KeywordCommitClassifier
from src.taskhook.config import TaskhookSettings
from src.taskhook.main import _redact_secret, create_app
from src.taskhook.state import Task, TaskStatus
from src.taskhook.webhook.signature import SIGNATURE_HEADER, compute_signature


SECRET = "topsecret"


def _push_body(messages, repo_id=42):
    return json.dumps(
        {
            "repository": {"id": repo_id, "full_name": "acme/widgets"},
            "commits": [{"message": m} for m in messages],
        }
    ).encode()


def _headers(body: bytes, event: str = "push", provider: str = "Github"):
    return {
        f"X-{provider}-Event": event,
        SIGNATURE_HEADER: compute_signature(SECRET, body),
        "Content-Type": "application/json",
    }


@pytest.fixture
def client(store, metrics):
    store.add_task(
        Task(
            id="t-7",
            display_id="TASK-07",
            status=TaskStatus.IN_REVIEW,
            linked_repositories=["42"],
        )
    )
    app = create_app(
        settings=TaskhookSettings(webhook_secret=SECRET),
        store=store,
        classifier=KeywordCommitClassifier(),
        metrics=metrics,
    )
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_ready(client):
    response = client.get("/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "ready"
    assert response.json()["dependencies"] == {"store": "healthy", "classifier": "healthy"}


def test_ready_reports_unhealthy_store(client, store):
    store.health_check = AsyncMock(return_value=False)

    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"


def test_unhealthy_classifier_does_not_block_readiness(client):
    client.app.state.services.classifier.health_check = AsyncMock(return_value=False)

    response = client.get("/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "ready"
    assert response.json()["dependencies"]["classifier"] == "unhealthy"


def test_ping(client):
    body = b'{"zen": "Design for failure."}'

    response = client.post("/webhooks/github", content=body, headers=_headers(body, "ping"))

    assert response.status_code == 200
    assert response.json() == {"message": "Pong"}


def test_push_completes_task_and_notifies_subscriber(client, store):
    body = _push_body(["fix: resolve TASK-07, closes it"])

    with client.websocket_connect("/ws") as websocket:
        websocket.send_text("ping")
        assert websocket.receive_text() == "pong"

        response = client.post("/webhooks/github", content=body, headers=_headers(body))

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert websocket.receive_json() == {
            "taskId": "TASK-07",
            "status": "Completed",
            "commitMessage": "fix: resolve TASK-07, closes it",
        }


def test_signature_is_checked_against_raw_body(client):
    body = _push_body(["fix TASK-07"])
    headers = _headers(body)
    reformatted = json.dumps(json.loads(body), indent=2).encode()

    response = client.post("/webhooks/github", content=reformatted, headers=headers)

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid signature"}


def test_missing_signature(client):
    body = _push_body([])

    response = client.post(
        "/webhooks/github", content=body, headers={"X-GitHub-Event": "push"}
    )

    assert response.status_code == 401
    assert response.json() == {"error": "No signature found"}


def test_unrecognized_event(client):
    body = b"{}"

    response = client.post("/webhooks/github", content=body, headers=_headers(body, "star"))

    assert response.json() == {"message": "Ignored event"}


def test_malformed_push_is_server_error(client):
    body = b'{"commits": "nope"}'

    response = client.post("/webhooks/github", content=body, headers=_headers(body))

    assert response.status_code == 500
    assert response.json() == {"message": "Server error"}


def test_unknown_provider(client):
    body = b"{}"

    response = client.post("/webhooks/bitbucket", content=body, headers=_headers(body, "ping", "Bitbucket"))

    assert response.status_code == 404
    assert response.json() == {"error": "Unknown provider"}


def test_metrics_endpoint(client):
    body = b"{}"
    client.post("/webhooks/github", content=body, headers=_headers(body, "ping"))

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert 'taskhook_webhook_deliveries_total{event="ping",outcome="pong"} 1.0' in response.text


def test_additional_provider_uses_its_own_event_header(store, metrics):
    app = create_app(
        settings=TaskhookSettings(webhook_providers=["github", "Gitea"]),
        store=store,
        classifier=KeywordCommitClassifier(),
        metrics=metrics,
    )

    with TestClient(app) as client:
        response = client.post(
            "/webhooks/gitea", content=b"{}", headers={"X-Gitea-Event": "ping"}
        )

    assert response.json() == {"message": "Pong"}


@pytest.mark.parametrize(
    "value, expected",
    [
        ("", "<not set>"),
        (None, "<not set>"),
        ("abc", "***"),
        ("supersecret", "supe*******"),
    ],
)
def test_redact_secret(value, expected):
    assert _redact_secret(value) == expected
