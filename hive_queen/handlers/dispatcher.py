"""
Event dispatch.

Maps event tags (``"issues.opened"``, ``"pull_request.synchronize"``, or a
bare event name such as ``"status"``) to ordered handler lists. Every
dispatch builds one fresh context that the handlers of that dispatch share;
nothing carries over to the next dispatch.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import structlog

log = structlog.get_logger(__name__)

ContextFactory = Callable[["HandlerEvent"], AbstractAsyncContextManager[dict[str, Any]]]


@dataclass(frozen=True)
class HandlerEvent:
    """A webhook event as handlers see it."""

    name: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def event(self) -> str:
        return self.name.split(".", 1)[0]

    @property
    def action(self) -> str | None:
        _, _, action = self.name.partition(".")
        return action or None


class Handler(ABC):
    """Reacts to one or more event tags."""

    name: str = "handler"

    @abstractmethod
    async def handle(self, event: HandlerEvent, context: dict[str, Any]) -> None:
        pass


@asynccontextmanager
async def empty_context(event: HandlerEvent) -> AsyncIterator[dict[str, Any]]:
    yield {}


class HandlerDispatcher:
    """Runs the handlers registered for an event, in order."""

    def __init__(
        self,
        event_map: Mapping[str, Sequence[Handler]],
        create_context: ContextFactory | None = None,
    ):
        self.event_map = {name: tuple(handlers) for name, handlers in event_map.items()}
        self.create_context = create_context or empty_context

    def handlers_for(self, name: str) -> tuple[Handler, ...]:
        return self.event_map.get(name, ())

    async def dispatch(self, name: str, payload: dict[str, Any] | None = None) -> int:
        """Dispatch one event.

        Returns:
            Number of handlers that ran

        Raises:
            The first handler error; later handlers of the same dispatch do
            not run
        """
        handlers = self.handlers_for(name)
        if not handlers:
            log.debug("event_unhandled", event_tag=name)
            return 0

        event = HandlerEvent(name=name, payload=payload or {})
        async with self.create_context(event) as context:
            for handler in handlers:
                log.info("handler_started", event_tag=name, handler=handler.name)
                try:
                    await handler.handle(event, context)
                except Exception as e:
                    log.error("handler_failed", event_tag=name, handler=handler.name, error=str(e))
                    raise
        return len(handlers)
