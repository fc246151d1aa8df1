"""Event handlers and the registry the dispatcher discovers them from."""

from .core import DEFAULT_HANDLER_PRIORITY, EventHandler
from .registry import HandlerRegistry, get_handler_registry

__all__ = [
    "DEFAULT_HANDLER_PRIORITY",
    "EventHandler",
    "HandlerRegistry",
    "get_handler_registry",
]
