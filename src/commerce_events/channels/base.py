"""Channel adapter contract.

A channel adapter pushes one serialized event to one transport. Adapters fail
independently: the publisher catches whatever ``send`` raises, records it as a
``ChannelSendFailure`` and moves on to the next adapter.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict

from commerce_events.events import SerializedEvent


class ChannelSendFailure(BaseModel):
    """Outcome of a failed ``send`` on one channel."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    channel: str
    routing_key: str
    event_id: str
    is_critical: bool
    error: Exception

    def __str__(self) -> str:
        return f"{self.channel} ({self.routing_key}, {self.event_id}): {type(self.error).__name__}: {self.error}"


class ChannelAdapter(ABC):
    """Abstract base class for channel adapters."""

    def __init__(self, name: str, is_critical: bool = False):
        """Initialize the adapter.

        Args:
            name: Channel name used in logs and failure reports
            is_critical: If True, a failure on this channel fails the whole publish call
        """
        self.name = name
        self.is_critical = is_critical

    @abstractmethod
    def send(self, serialized: SerializedEvent, routing_key: str) -> None:
        """Deliver one serialized event.

        Raises:
            Any exception from the transport. The publisher isolates it.
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name} critical={self.is_critical}>"
