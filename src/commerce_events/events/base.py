"""Base event model and discriminator table.

Every domain event extends ``BaseEvent`` and declares a fixed ``EVENT_TYPE``.
The discriminator is emitted as ``eventType`` on the wire and is the key of
the closed table consulted by ``EventCodec.decode``. Variants join the table
through the ``register_event`` decorator when their module is imported.
"""

from abc import ABC
from datetime import datetime
from typing import Any, ClassVar, Self, TypeVar
from uuid import uuid4

import arrow
from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from commerce_events.exceptions import EventRegistrationError, UnknownEventTypeError

DEFAULT_EVENT_VERSION = "1.0"

_EVENT_TYPES: dict[str, type["BaseEvent"]] = {}


class EventPayload(BaseModel):
    """Immutable value object nested inside event payloads (addresses, line items)."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class BaseEvent(BaseModel, ABC):
    """Base class for all domain events.

    Identity and provenance fields are shared by every variant. ``event_id``,
    ``timestamp`` and ``version`` are filled in at construction when not given;
    all other metadata is optional. Instances are frozen.

    Attributes:
        event_id: Unique identifier (UUID4 string)
        timestamp: UTC creation time
        source_service: Service that produced the event
        version: Schema version of the event
        correlation_id: Identifier shared by related events
        causation_id: Identifier of the command or event that caused this one
        user_id: User that triggered the event
        tenant_id: Tenant the event belongs to
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    EVENT_TYPE: ClassVar[str] = ""

    event_id: str = Field(default_factory=lambda: str(uuid4()), min_length=1)
    timestamp: datetime = Field(default_factory=lambda: arrow.utcnow().datetime)
    source_service: str | None = None
    version: str = DEFAULT_EVENT_VERSION
    correlation_id: str | None = None
    causation_id: str | None = None
    user_id: str | None = None
    tenant_id: str | None = None

    def model_post_init(self, context: Any, /) -> None:
        if not type(self).EVENT_TYPE:
            raise TypeError(f"{type(self).__name__} does not declare EVENT_TYPE and cannot be instantiated")

    @computed_field(alias="eventType")  # type: ignore[prop-decorator]
    @property
    def event_type(self) -> str:
        """Discriminator identifying the concrete variant."""
        return type(self).EVENT_TYPE

    @classmethod
    def from_source(
        cls,
        source_service: str,
        correlation_id: str | None = None,
        user_id: str | None = None,
        /,
        **payload: Any,
    ) -> Self:
        """Create an event stamped with its origin.

        Args:
            source_service: Service producing the event
            correlation_id: Optional correlation identifier
            user_id: Optional user identifier; requires ``correlation_id`` to be given positionally first
            **payload: Variant-specific fields

        Returns:
            The new event
        """
        data: dict[str, Any] = {"source_service": source_service, **payload}
        if correlation_id is not None:
            data["correlation_id"] = correlation_id
        if user_id is not None:
            data["user_id"] = user_id
        return cls(**data)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.event_id} type={self.event_type} time={self.timestamp.isoformat()}>"


E = TypeVar("E", bound=BaseEvent)


def register_event(event_class: type[E]) -> type[E]:
    """Add an event variant to the discriminator table.

    Raises:
        EventRegistrationError: If the class has no ``EVENT_TYPE`` or another
            class is already registered under the same discriminator
    """
    event_type = event_class.EVENT_TYPE
    if not event_type:
        raise EventRegistrationError(f"{event_class.__name__} must declare EVENT_TYPE")

    existing = _EVENT_TYPES.get(event_type)
    if existing is not None and existing is not event_class:
        raise EventRegistrationError(f"Event type {event_type} already registered to {existing.__name__}")

    _EVENT_TYPES[event_type] = event_class
    return event_class


def get_event_class(event_type: object) -> type[BaseEvent]:
    """Resolve the variant registered for a discriminator.

    Raises:
        UnknownEventTypeError: If ``event_type`` is not a string or no variant is registered for it
    """
    if not isinstance(event_type, str) or event_type not in _EVENT_TYPES:
        raise UnknownEventTypeError(event_type)
    return _EVENT_TYPES[event_type]


def registered_event_types() -> dict[str, type[BaseEvent]]:
    """Return a copy of the discriminator table."""
    return dict(_EVENT_TYPES)
