"""Webhook event handlers and the dispatcher that routes events to them."""

from hive_queen.handlers.dispatcher import Handler, HandlerDispatcher, HandlerEvent

__all__ = ["Handler", "HandlerDispatcher", "HandlerEvent"]
