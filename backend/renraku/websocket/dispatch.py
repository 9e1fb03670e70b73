import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Any]]


class EventDispatcher:
    """Routes incoming frames by their ``type`` to every registered handler.

    Several handlers may listen to one event; registering another handler
    appends it and never replaces an earlier one.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler | None = None):
        """Register a handler. Usable directly or as ``@dispatcher.on("event")``."""
        if handler is None:
            def decorator(fn: Handler) -> Handler:
                self._handlers[event].append(fn)
                return fn

            return decorator
        self._handlers[event].append(handler)
        return handler

    def off(self, event: str, handler: Handler | None = None) -> None:
        if handler is None:
            self._handlers.pop(event, None)
            return
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._handlers[event]

    def handlers(self, event: str) -> list[Handler]:
        return list(self._handlers.get(event, ()))

    async def dispatch(self, event: str, *args: Any) -> int:
        """Run each handler for ``event`` in registration order. Returns how many ran."""
        handlers = self.handlers(event)
        if not handlers:
            logger.debug("No handler for event %r", event)
        for handler in handlers:
            await handler(*args)
        return len(handlers)
