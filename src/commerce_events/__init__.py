"""Event publication and dispatch shared across commerce services."""

from .dispatcher import DispatchResult, EventDispatcher, HandlerOutcome
from .exceptions import EventsError, PublishError
from .handlers import EventHandler, HandlerRegistry, get_handler_registry
from .logging import setup_logging
from .publisher import EventPublisher
from .settings import Settings, get_settings

__all__ = [
    "DispatchResult",
    "EventDispatcher",
    "EventHandler",
    "EventPublisher",
    "EventsError",
    "HandlerOutcome",
    "HandlerRegistry",
    "PublishError",
    "Settings",
    "get_handler_registry",
    "get_settings",
    "setup_logging",
]
