"""Long-haul log channel for audit and large-scale replay."""

from typing import Protocol

from loguru import logger

from commerce_events.events import SerializedEvent

from .base import ChannelAdapter


class LogProducer(Protocol):
    """Producer of a partitioned, append-only log (e.g. a Kafka producer wrapper)."""

    def send(self, topic: str, key: str, value: bytes) -> object: ...


class LogChannel(ChannelAdapter):
    """Appends events to a log topic keyed by routing key."""

    def __init__(self, producer: LogProducer, topic: str, name: str = "log", is_critical: bool = False):
        super().__init__(name, is_critical=is_critical)
        self._producer = producer
        self.topic = topic

    def send(self, serialized: SerializedEvent, routing_key: str) -> None:
        self._producer.send(self.topic, routing_key, serialized.body_bytes)
        logger.debug(f"Event published to log channel {self.topic}: {routing_key} -> {serialized.event_id}")
