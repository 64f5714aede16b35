"""FastAPI application entry point for the task webhook service.

This module provides the FastAPI application that receives
source-control webhooks, completes the tasks named by pushed commits,
and pushes task updates to WebSocket subscribers.

Routes:
- POST /webhooks/{provider}: webhook receiver
- WS /ws: real-time task update subscription
- GET /health, /ready: liveness and readiness probes
- GET /metrics: Prometheus metrics
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response

from .classifier.agent import Classifier, CommitClassifier
from .classifier.keywords import KeywordCommitClassifier
from .config import TaskhookSettings, get_settings
from .events.emitter import (
    CompositeBroadcaster,
    LoggingBroadcaster,
    WebSocketBroadcaster,
)
from .events.metrics import WebhookMetrics, generate_metrics_output, get_metrics
from .receiver import WebhookReceiver, create_webhook_receiver
from .state.machine import TaskStore
from .state.memory import InMemoryTaskStore
from .state.repository import PostgresTaskStore
from .webhook.signature import SIGNATURE_HEADER

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


@dataclass
class Services:
    """Components wired during startup and shared by the routes."""

    settings: TaskhookSettings
    store: TaskStore
    classifier: Classifier
    hub: WebSocketBroadcaster
    broadcaster: CompositeBroadcaster
    metrics: WebhookMetrics
    receiver: WebhookReceiver


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters.

    Args:
        value: The secret value to redact.
        visible_chars: Number of characters to show at the start.

    Returns:
        Redacted string with asterisks replacing hidden characters.
    """
    if not value:
        return "<not set>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: TaskhookSettings) -> None:
    """Log configuration values with secrets redacted.

    Args:
        settings: The service settings to log.
    """
    logger.info("Taskhook configuration:")
    logger.info(f"  Webhook Secret: {_redact_secret(settings.webhook_secret)}")
    logger.info(f"  Webhook Providers: {', '.join(settings.webhook_providers)}")
    logger.info(f"  LLM URL: {settings.llm_url or '<keyword classifier>'}")
    logger.info(f"  LLM Model: {settings.llm_model}")
    logger.info(f"  LLM API Key: {_redact_secret(settings.llm_api_key)}")
    logger.info(
        f"  Classifier Timeout Seconds: {settings.classifier_timeout_seconds}"
    )
    logger.info(f"  Database URL: {_redact_secret(settings.database_url)}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")

    if not settings.webhook_secret:
        logger.warning(
            "No webhook secret configured; signature verification is disabled"
        )


def _create_classifier(cfg: TaskhookSettings) -> Classifier:
    """Use the LLM classifier when an endpoint is configured, keywords otherwise."""
    if cfg.llm_url:
        return CommitClassifier(
            llm_url=cfg.llm_url,
            model_name=cfg.llm_model,
            api_key=cfg.llm_api_key,
            timeout=cfg.classifier_timeout_seconds,
        )
    logger.info("No LLM URL configured, using keyword classifier")
    return KeywordCommitClassifier()


async def _create_store(cfg: TaskhookSettings) -> TaskStore:
    """Connect to PostgreSQL when configured, otherwise keep tasks in memory."""
    if cfg.database_url:
        store = PostgresTaskStore(connection_string=cfg.database_url)
        await store.connect()
        return store
    logger.warning("No database URL configured, tasks are kept in memory")
    return InMemoryTaskStore()


def create_app(
    settings: Optional[TaskhookSettings] = None,
    store: Optional[TaskStore] = None,
    classifier: Optional[Classifier] = None,
    metrics: Optional[WebhookMetrics] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Components not passed in are created from settings during startup.

    Args:
        settings: Service settings; read from the environment if omitted.
        store: Task store; PostgreSQL or in-memory if omitted.
        classifier: Commit classifier; LLM or keyword if omitted.
        metrics: Metrics instance; the global one if omitted.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Wire dependencies on startup and release them on shutdown."""
        logger.info("Taskhook starting up...")

        cfg = settings or get_settings()
        _log_configuration(cfg)

        owns_store = store is None
        task_store = store if store is not None else await _create_store(cfg)

        hub = WebSocketBroadcaster()
        broadcaster = CompositeBroadcaster([hub, LoggingBroadcaster()])
        service_metrics = metrics or get_metrics()

        commit_classifier = classifier or _create_classifier(cfg)
        receiver = create_webhook_receiver(
            store=task_store,
            classifier=commit_classifier,
            broadcaster=broadcaster,
            webhook_secret=cfg.webhook_secret,
            classifier_timeout=cfg.classifier_timeout_seconds,
            metrics=service_metrics,
        )

        app.state.services = Services(
            settings=cfg,
            store=task_store,
            classifier=commit_classifier,
            hub=hub,
            broadcaster=broadcaster,
            metrics=service_metrics,
            receiver=receiver,
        )

        logger.info("Taskhook started successfully")

        yield

        logger.info("Taskhook shutting down...")

        await broadcaster.close()
        if owns_store and isinstance(task_store, PostgresTaskStore):
            await task_store.disconnect()

        logger.info("Taskhook shutdown complete")

    app = FastAPI(
        title="Taskhook",
        description="Completes tasks from source-control commit messages",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health():
        """Liveness probe endpoint."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request):
        """Readiness probe endpoint.

        Checks the task store and the classifier. Only the store gates
        readiness; commits are treated as unmatched while the classifier is
        down.

        Returns:
            Status and dependency health; HTTP 503 when the store is down.
        """
        services: Services = request.app.state.services
        store_ok = await services.store.health_check()
        classifier_ok = await services.classifier.health_check()
        body = {
            "status": "ready" if store_ok else "not_ready",
            "dependencies": {
                "store": "healthy" if store_ok else "unhealthy",
                "classifier": "healthy" if classifier_ok else "unhealthy",
            },
            "subscribers": services.hub.subscriber_count,
        }
        return JSONResponse(status_code=200 if store_ok else 503, content=body)

    @app.get("/metrics")
    async def prometheus_metrics(request: Request):
        """Prometheus metrics endpoint."""
        services: Services = request.app.state.services
        return Response(
            content=generate_metrics_output(services.metrics.registry),
            media_type=PROMETHEUS_CONTENT_TYPE,
        )

    @app.post("/webhooks/{provider}")
    async def receive_webhook(provider: str, request: Request):
        """Webhook receiver endpoint.

        The raw body is read before any JSON parsing so the signature is
        checked against the exact bytes the host signed.
        """
        services: Services = request.app.state.services
        provider = provider.lower()

        if provider not in services.settings.webhook_providers:
            logger.info("Unknown webhook provider", extra={"provider": provider})
            return JSONResponse(status_code=404, content={"error": "Unknown provider"})

        raw_body = await request.body()
        event_type = request.headers.get(f"X-{provider.capitalize()}-Event")
        signature = request.headers.get(SIGNATURE_HEADER)

        response = await services.receiver.handle(event_type, raw_body, signature)
        return JSONResponse(status_code=response.status_code, content=response.body)

    @app.websocket("/ws")
    async def task_updates(websocket: WebSocket):
        """Real-time task update subscription.

        Every connected client receives every taskUpdated event. A text
        frame ``ping`` is answered with ``pong``.
        """
        hub = websocket.app.state.services.hub
        await hub.connect(websocket)
        try:
            while True:
                text = await websocket.receive_text()
                if text.strip().lower() == "ping":
                    await websocket.send_text("pong")
        except WebSocketDisconnect:
            logger.debug("WebSocket client went away")
        finally:
            await hub.disconnect(websocket)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    # For local development, load settings to get host/port
    dev_settings = get_settings()
    uvicorn.run(
        "src.taskhook.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
        reload=True,
    )
