"""Stream bridge channel: best-effort secondary delivery to a logical binding."""

import threading
from collections import defaultdict
from typing import Protocol

import redis
from loguru import logger

from commerce_events.events import SerializedEvent
from commerce_events.exceptions import EventsError
from commerce_events.settings import Settings

from .base import ChannelAdapter


class StreamBridge(Protocol):
    """Sends payloads to named logical bindings of a streaming system."""

    def send(self, binding: str, payload: bytes) -> bool | None: ...


class StreamBridgeError(EventsError):
    """Raised when a bridge reports that it did not accept a payload."""

    default_error_code = "STREAM_BRIDGE_ERROR"


class InMemoryStreamBridge:
    """Records payloads per binding. Useful for local runs and tests."""

    def __init__(self):
        self._sent: dict[str, list[bytes]] = defaultdict(list)
        self._lock = threading.Lock()

    def send(self, binding: str, payload: bytes) -> bool:
        with self._lock:
            self._sent[binding].append(payload)
        return True

    def sent(self, binding: str) -> list[bytes]:
        with self._lock:
            return list(self._sent.get(binding, ()))


class RedisStreamBridge:
    """Appends payloads to a Redis stream named after the binding.

    Args:
        client: redis-py client
        max_length: Approximate cap on stream length (``XADD MAXLEN ~``)
    """

    def __init__(self, client: redis.Redis, max_length: int = 10_000):
        self._client = client
        self._max_length = max_length

    @classmethod
    def from_settings(cls, settings: Settings, max_length: int = 10_000) -> "RedisStreamBridge":
        """Create a bridge with its own connection pool to ``settings.redis_url``."""
        logger.debug(f"Creating Redis stream bridge for {settings.redis_url}")
        return cls(redis.Redis.from_url(settings.redis_url), max_length=max_length)

    def send(self, binding: str, payload: bytes) -> bool:
        entry_id = self._client.xadd(binding, {"payload": payload}, maxlen=self._max_length, approximate=True)
        return entry_id is not None


class StreamBridgeChannel(ChannelAdapter):
    """Publishes events through a ``StreamBridge`` to a fixed binding."""

    def __init__(self, bridge: StreamBridge, binding: str, name: str = "stream-bridge", is_critical: bool = False):
        super().__init__(name, is_critical=is_critical)
        self._bridge = bridge
        self.binding = binding

    def send(self, serialized: SerializedEvent, routing_key: str) -> None:
        accepted = self._bridge.send(self.binding, serialized.body_bytes)
        if accepted is False:
            raise StreamBridgeError(f"Stream bridge rejected event {serialized.event_id} on {self.binding}")
        logger.debug(f"Event published to stream bridge: {routing_key} -> {serialized.event_id}")
