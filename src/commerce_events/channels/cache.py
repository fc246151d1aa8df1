"""Cache channel: keeps recently published events for short-term replay.

Layout:
    ``event:<type>:<id>``     the serialized event, expiring after the event TTL
    ``events:recent:<type>``  newest-first list of serialized events, capped in
                              length and expiring after the recent-events TTL
"""

from datetime import timedelta

from loguru import logger

from commerce_events.cache import CacheStore
from commerce_events.events import SerializedEvent

from .base import ChannelAdapter


def event_key(event_type: str, event_id: str) -> str:
    return f"event:{event_type}:{event_id}"


def recent_events_key(event_type: str) -> str:
    return f"events:recent:{event_type}"


class CacheChannel(ChannelAdapter):
    """Stores each published event in the cache collaborator."""

    def __init__(
        self,
        cache: CacheStore,
        event_ttl: timedelta,
        recent_events_ttl: timedelta,
        recent_events_max_length: int,
        name: str = "cache",
        is_critical: bool = False,
    ):
        super().__init__(name, is_critical=is_critical)
        self._cache = cache
        self._event_ttl = event_ttl
        self._recent_events_ttl = recent_events_ttl
        self._recent_events_max_length = recent_events_max_length

    def send(self, serialized: SerializedEvent, routing_key: str) -> None:
        key = event_key(serialized.event_type, serialized.event_id)
        self._cache.set(key, serialized.body, ttl=self._event_ttl)

        recent_key = recent_events_key(serialized.event_type)
        self._cache.push_left(recent_key, serialized.body)
        self._cache.trim(recent_key, 0, self._recent_events_max_length - 1)
        self._cache.expire(recent_key, self._recent_events_ttl)

        logger.debug(f"Event published to cache: {key} -> {serialized.event_id}")
