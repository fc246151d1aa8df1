"""Event handler contract.

Handlers react to one event type. The dispatcher asks each registered
handler whether it applies (``can_handle``), orders the applicable ones by
``priority`` (lower runs first) and calls ``handle`` on each.

## Usage Example

```python
from commerce_events.events import OrderCreatedEvent
from commerce_events.handlers import EventHandler


class ReserveStockHandler(EventHandler[OrderCreatedEvent]):
    event_type = OrderCreatedEvent
    priority = 10

    def __init__(self, inventory: InventoryService):
        self.inventory = inventory

    def handle(self, event: OrderCreatedEvent) -> None:
        for item in event.order_items:
            self.inventory.reserve(item.product_id, item.quantity)
```

"""

from abc import ABC, abstractmethod
from typing import ClassVar, Generic, TypeVar

from commerce_events.events import BaseEvent

DEFAULT_HANDLER_PRIORITY = 100

T_Event = TypeVar("T_Event", bound=BaseEvent)


class EventHandler(ABC, Generic[T_Event]):
    """Base class for event handlers.

    Subclasses set ``event_type`` to the concrete event class they support and
    implement ``handle``. ``priority`` defaults to 100 and ``name`` to the class
    name; override ``can_handle`` for predicates beyond the type check.
    """

    event_type: ClassVar[type[BaseEvent]]
    priority: int = DEFAULT_HANDLER_PRIORITY

    @abstractmethod
    def handle(self, event: T_Event) -> None:
        """Handle the event.

        Raises:
            Any exception. The dispatcher logs it and continues with the next handler.
        """

    def can_handle(self, event: BaseEvent) -> bool:
        """Check whether this handler should process the event."""
        return isinstance(event, self.event_type)

    @property
    def name(self) -> str:
        """Handler name used in logs and dispatch results."""
        return type(self).__name__

    def __repr__(self) -> str:
        return f"<{self.name} event_type={self.event_type.__name__} priority={self.priority}>"
