"""Channel adapters the publisher fans events out to."""

from .base import ChannelAdapter, ChannelSendFailure
from .bridge import InMemoryStreamBridge, RedisStreamBridge, StreamBridge, StreamBridgeChannel, StreamBridgeError
from .broker import (
    Binding,
    BrokerChannel,
    BrokerClient,
    BrokerMessage,
    BrokerTopology,
    Exchange,
    InMemoryBroker,
    Queue,
    topic_matches,
)
from .cache import CacheChannel, event_key, recent_events_key
from .log import LogChannel, LogProducer

__all__ = [
    "Binding",
    "BrokerChannel",
    "BrokerClient",
    "BrokerMessage",
    "BrokerTopology",
    "CacheChannel",
    "ChannelAdapter",
    "ChannelSendFailure",
    "Exchange",
    "InMemoryBroker",
    "InMemoryStreamBridge",
    "LogChannel",
    "LogProducer",
    "Queue",
    "RedisStreamBridge",
    "StreamBridge",
    "StreamBridgeChannel",
    "StreamBridgeError",
    "event_key",
    "recent_events_key",
    "topic_matches",
]
