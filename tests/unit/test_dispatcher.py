"""Tests for hive_queen/handlers/dispatcher.py."""

from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest
import structlog
from structlog.testing import capture_logs

from hive_queen.handlers import Handler, HandlerDispatcher, HandlerEvent


class RecordingHandler(Handler):
    """Appends its name and the context it saw to a shared log."""

    def __init__(self, name, calls, fail=False):
        self.name = name
        self.calls = calls
        self.fail = fail

    async def handle(self, event, context):
        self.calls.append((self.name, event.name, context))
        context.setdefault("seen", []).append(self.name)
        if self.fail:
            raise RuntimeError(f"{self.name} failed")


class TestHandlerEvent:
    def test_event_and_action(self):
        event = HandlerEvent("pull_request.synchronize")

        assert event.event == "pull_request"
        assert event.action == "synchronize"

    def test_bare_event_has_no_action(self):
        event = HandlerEvent("status")

        assert event.event == "status"
        assert event.action is None


class TestHandlerDispatcher:
    """Tests for HandlerDispatcher.dispatch."""

    @pytest.mark.asyncio
    async def test_handlers_run_in_order(self):
        calls = []
        dispatcher = HandlerDispatcher(
            {"pull_request.opened": [RecordingHandler("intake", calls), RecordingHandler("merge", calls)]}
        )

        ran = await dispatcher.dispatch("pull_request.opened", {"number": 1})

        assert ran == 2
        assert [name for name, _, _ in calls] == ["intake", "merge"]

    @pytest.mark.asyncio
    async def test_unhandled_event_returns_zero(self):
        dispatcher = HandlerDispatcher({})

        assert await dispatcher.dispatch("check_run.completed", {}) == 0

    @pytest.mark.asyncio
    async def test_context_shared_within_one_dispatch(self):
        calls = []
        dispatcher = HandlerDispatcher(
            {"issues.opened": [RecordingHandler("first", calls), RecordingHandler("second", calls)]}
        )

        await dispatcher.dispatch("issues.opened")

        first_context, second_context = calls[0][2], calls[1][2]
        assert first_context is second_context
        assert second_context["seen"] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_fresh_context_per_dispatch(self):
        calls = []
        dispatcher = HandlerDispatcher({"issues.opened": [RecordingHandler("only", calls)]})

        await dispatcher.dispatch("issues.opened")
        await dispatcher.dispatch("issues.opened")

        first_context, second_context = calls[0][2], calls[1][2]
        assert first_context is not second_context
        assert second_context["seen"] == ["only"]

    @pytest.mark.asyncio
    async def test_context_factory_opened_and_closed_per_dispatch(self):
        opened, closed = [], []

        @asynccontextmanager
        async def create_context(event):
            opened.append(event.name)
            yield {"repo": event.payload["repo"]}
            closed.append(event.name)

        calls = []
        dispatcher = HandlerDispatcher({"status": [RecordingHandler("merge", calls)]}, create_context)

        await dispatcher.dispatch("status", {"repo": "acme/hive"})

        assert opened == closed == ["status"]
        assert calls[0][2]["repo"] == "acme/hive"

    @pytest.mark.asyncio
    async def test_handler_error_propagates_and_stops_dispatch(self):
        calls = []
        dispatcher = HandlerDispatcher(
            {"status": [RecordingHandler("broken", calls, fail=True), RecordingHandler("after", calls)]}
        )

        with pytest.raises(RuntimeError, match="broken failed"):
            await dispatcher.dispatch("status", {})

        assert [name for name, _, _ in calls] == ["broken"]

    @pytest.mark.asyncio
    async def test_logs_carry_event_tag(self):
        calls = []
        dispatcher = HandlerDispatcher({"issues.opened": [RecordingHandler("discussion", calls)]})
        logger = structlog.get_logger("hive_queen.handlers.dispatcher")

        with capture_logs() as logs, patch("hive_queen.handlers.dispatcher.log", logger):
            assert await dispatcher.dispatch("issues.opened", {}) == 1

        started = [entry for entry in logs if entry["event"] == "handler_started"]
        assert started == [
            {"event": "handler_started", "event_tag": "issues.opened", "handler": "discussion", "log_level": "info"}
        ]

    def test_handlers_for(self):
        handler = RecordingHandler("x", [])
        dispatcher = HandlerDispatcher({"status": [handler]})

        assert dispatcher.handlers_for("status") == (handler,)
        assert dispatcher.handlers_for("issues.closed") == ()
