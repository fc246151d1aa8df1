"""Handler registry queried by the dispatcher on every dispatch."""

import threading
from functools import lru_cache

from loguru import logger

from commerce_events.events import BaseEvent
from commerce_events.exceptions import HandlerRegistrationError

from .core import EventHandler


class HandlerRegistry:
    """Registry of event handler instances.

    Handlers are kept in registration order, which is the tie-break order for
    equal priorities. Reads return immutable snapshots, so a dispatch sees a
    consistent set even while handlers are being registered concurrently.
    """

    def __init__(self):
        """Initialize an empty handler registry."""
        self._handlers: tuple[EventHandler, ...] = ()
        self._lock = threading.Lock()

    def register(self, handler: EventHandler) -> None:
        """Register a handler instance.

        Args:
            handler: The handler to register

        Raises:
            HandlerRegistrationError: If the handler does not satisfy the handler contract
                or is already registered
        """
        if not isinstance(handler, EventHandler):
            raise HandlerRegistrationError(f"Handler must be an EventHandler instance, got: {handler!r}")

        event_type = getattr(handler, "event_type", None)
        if not (isinstance(event_type, type) and issubclass(event_type, BaseEvent)):
            raise HandlerRegistrationError(f"Handler {type(handler).__name__} must declare an event_type BaseEvent subclass")

        priority = getattr(handler, "priority", None)
        if not isinstance(priority, int) or isinstance(priority, bool):
            raise HandlerRegistrationError(f"Handler {type(handler).__name__} priority must be an int, got: {priority!r}")

        with self._lock:
            if any(existing is handler for existing in self._handlers):
                raise HandlerRegistrationError(f"Handler {handler.name} is already registered")
            self._handlers = (*self._handlers, handler)

        logger.debug(f"Registered handler {handler.name} for {event_type.__name__} (priority {handler.priority})")

    def unregister(self, handler: EventHandler) -> bool:
        """Remove a handler instance. Returns True if it was registered."""
        with self._lock:
            remaining = tuple(existing for existing in self._handlers if existing is not handler)
            removed = len(remaining) != len(self._handlers)
            self._handlers = remaining

        if removed:
            logger.debug(f"Unregistered handler {handler.name}")
        return removed

    def clear(self) -> None:
        """Remove all handlers."""
        with self._lock:
            self._handlers = ()
        logger.debug("Cleared all handlers")

    def all_handlers(self) -> tuple[EventHandler, ...]:
        """Return a snapshot of every registered handler in registration order."""
        return self._handlers

    def handlers_for(self, event_type: type[BaseEvent]) -> tuple[EventHandler, ...]:
        """Return the handlers declared for exactly ``event_type``."""
        return tuple(handler for handler in self._handlers if handler.event_type is event_type)

    def __len__(self) -> int:
        return len(self._handlers)


@lru_cache
def get_handler_registry() -> HandlerRegistry:
    """Get the singleton handler registry instance.

    Returns:
        The global handler registry
    """
    return HandlerRegistry()
