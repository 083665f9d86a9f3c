"""Webhook server for real-time GitHub event processing."""

import hashlib
import hmac
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request

from hive_queen.config.settings import AppSettings
from hive_queen.engine.jobs import GitHubAppSource
from hive_queen.exceptions import HiveQueenError
from hive_queen.handlers.dispatcher import HandlerDispatcher, HandlerEvent
from hive_queen.handlers.webhooks import build_event_map
from hive_queen.models.domain import Installation, Repository

log = structlog.get_logger(__name__)


def event_tag(event_type: str, payload: dict[str, Any]) -> str:
    """``"<event>.<action>"``, or the bare event name for action-less events."""
    action = payload.get("action")
    return f"{event_type}.{action}" if action else event_type


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(f"sha256={expected}", signature)


def repository_context_factory(source: GitHubAppSource):
    """Open the event's installation repository for the handlers of one dispatch."""

    @asynccontextmanager
    async def create_context(event: HandlerEvent) -> AsyncIterator[dict[str, Any]]:
        installation_data = event.payload.get("installation") or {}
        repository_data = event.payload.get("repository") or {}
        if "id" not in installation_data or "name" not in repository_data:
            raise HiveQueenError(f"Event {event.name} carries no installation repository")

        installation = Installation(id=installation_data["id"])
        repository = Repository(owner=repository_data["owner"]["login"], name=repository_data["name"])
        async with source.open_repository(installation, repository) as repo:
            yield {"repo": repo}

    return create_context


def create_app(settings: AppSettings, dispatcher: HandlerDispatcher) -> FastAPI:
    """Build the webhook application around a dispatcher."""
    app = FastAPI(title="hive-queen webhook server")

    @app.post("/webhook/github")
    async def github_webhook(request: Request) -> dict[str, Any]:
        """Handle GitHub webhook events."""
        event_type = request.headers.get("X-GitHub-Event")
        if not event_type:
            raise HTTPException(status_code=400, detail="Missing X-GitHub-Event header")

        body = await request.body()
        if settings.webhook_secret and not verify_signature(
            settings.webhook_secret, body, request.headers.get("X-Hub-Signature-256")
        ):
            log.warning("webhook_signature_invalid", event_type=event_type)
            raise HTTPException(status_code=401, detail="Invalid signature")

        payload = await request.json()
        tag = event_tag(event_type, payload)
        log.info("webhook_received", event_tag=tag, delivery=request.headers.get("X-GitHub-Delivery"))

        try:
            handled = await dispatcher.dispatch(tag, payload)
        except HiveQueenError as e:
            log.error("webhook_processing_failed", event_tag=tag, error=e.message, exc_info=True)
            raise HTTPException(status_code=422, detail=e.message) from e
        except Exception as e:
            log.error("webhook_processing_unexpected", event_tag=tag, error=str(e), exc_info=True)
            raise HTTPException(status_code=500, detail="Internal server error") from e

        return {"status": "success", "event": tag, "handlers": handled}

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "service": "hive-queen"}

    return app


def build_dispatcher(source: GitHubAppSource) -> HandlerDispatcher:
    return HandlerDispatcher(build_event_map(), create_context=repository_context_factory(source))
