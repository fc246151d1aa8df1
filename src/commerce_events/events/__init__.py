"""Domain events exchanged between services.

Importing this package registers every built-in variant in the discriminator
table used by ``EventCodec``.
"""

from .base import BaseEvent, EventPayload, get_event_class, register_event, registered_event_types
from .codec import EventCodec, SerializedEvent
from .order import AddressInfo, OrderCreatedEvent, OrderItemInfo
from .product import ProductCreatedEvent
from .user import (
    UserActivatedEvent,
    UserDeactivatedEvent,
    UserDeletedEvent,
    UserRegisteredEvent,
    UserUpdatedEvent,
)

__all__ = [
    "AddressInfo",
    "BaseEvent",
    "EventCodec",
    "EventPayload",
    "OrderCreatedEvent",
    "OrderItemInfo",
    "ProductCreatedEvent",
    "SerializedEvent",
    "UserActivatedEvent",
    "UserDeactivatedEvent",
    "UserDeletedEvent",
    "UserRegisteredEvent",
    "UserUpdatedEvent",
    "get_event_class",
    "register_event",
    "registered_event_types",
]
