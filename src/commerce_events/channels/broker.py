"""Durable broker channel and its dead-letter topology.

The broker is an at-least-once topic message bus. Events are published to the
events exchange with the routing key chosen by the publisher. Messages that
cannot be routed go to the exchange's alternate exchange, the dead-letter
exchange (DLX). Consumer queues dead-letter rejected messages to the same DLX.
The dead-letter queue (DLQ) is bound to the DLX with ``#`` and dead-letters
back to the events exchange, so a message rejected from the DLQ is re-routed
instead of being dropped.

``BrokerTopology`` describes that layout declaratively and ``InMemoryBroker``
honours it for single-process deployments and tests.
"""

import threading
from collections import deque
from collections.abc import Callable
from itertools import count
from typing import Any, Literal, Protocol, Self

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from commerce_events.events import SerializedEvent
from commerce_events.settings import Settings

from .base import ChannelAdapter

ConfirmCallback = Callable[[int, bool, str | None], None]
ReturnCallback = Callable[["BrokerMessage", int, str, str, str], None]

NO_ROUTE_REPLY_CODE = 312


class BrokerClient(Protocol):
    """Publishing side of the message broker.

    Registering the same confirm or return callback twice must be a no-op,
    since every ``BrokerChannel`` built on a client registers its log callbacks.
    """

    def send(self, payload: bytes, exchange: str, routing_key: str) -> None: ...

    def on_confirm(self, callback: ConfirmCallback) -> None: ...

    def on_return(self, callback: ReturnCallback) -> None: ...


class Exchange(BaseModel):
    """An exchange declaration."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: Literal["topic", "direct", "fanout"] = "topic"
    durable: bool = True
    auto_delete: bool = False
    alternate_exchange: str | None = None

    @property
    def arguments(self) -> dict[str, Any]:
        return {"alternate-exchange": self.alternate_exchange} if self.alternate_exchange else {}


class Queue(BaseModel):
    """A queue declaration."""

    model_config = ConfigDict(frozen=True)

    name: str
    durable: bool = True
    dead_letter_exchange: str | None = None
    dead_letter_routing_key: str | None = None

    @property
    def arguments(self) -> dict[str, Any]:
        arguments: dict[str, Any] = {}
        if self.dead_letter_exchange:
            arguments["x-dead-letter-exchange"] = self.dead_letter_exchange
        if self.dead_letter_routing_key:
            arguments["x-dead-letter-routing-key"] = self.dead_letter_routing_key
        return arguments


class Binding(BaseModel):
    """Binds a queue to an exchange with a routing pattern."""

    model_config = ConfigDict(frozen=True)

    queue: str
    exchange: str
    pattern: str = "#"


class BrokerTopology(BaseModel):
    """Exchanges, queues and bindings of the event bus."""

    model_config = ConfigDict(frozen=True)

    events_exchange: str
    dead_letter_exchange: str
    exchanges: list[Exchange] = Field(default_factory=list)
    queues: list[Queue] = Field(default_factory=list)
    bindings: list[Binding] = Field(default_factory=list)

    @classmethod
    def default(cls, settings: Settings) -> Self:
        """Build the events exchange, DLX and DLQ from settings."""
        return cls(
            events_exchange=settings.broker_exchange,
            dead_letter_exchange=settings.dead_letter_exchange,
            exchanges=[
                Exchange(name=settings.broker_exchange, alternate_exchange=settings.dead_letter_exchange),
                Exchange(name=settings.dead_letter_exchange),
            ],
            queues=[Queue(name=settings.dead_letter_queue, dead_letter_exchange=settings.broker_exchange)],
            bindings=[Binding(queue=settings.dead_letter_queue, exchange=settings.dead_letter_exchange, pattern="#")],
        )

    def with_service_queue(self, name: str, patterns: list[str]) -> Self:
        """Return a copy with a consumer queue bound to the events exchange.

        The queue dead-letters rejected messages to the DLX.

        Args:
            name: Queue name
            patterns: Routing patterns to bind (e.g. ``["ORDER_CREATED", "USER_REGISTERED"]``)
        """
        queue = Queue(name=name, dead_letter_exchange=self.dead_letter_exchange)
        bindings = [Binding(queue=name, exchange=self.events_exchange, pattern=pattern) for pattern in patterns]
        return self.model_copy(update={"queues": [*self.queues, queue], "bindings": [*self.bindings, *bindings]})


def topic_matches(pattern: str, routing_key: str) -> bool:
    """Match a routing key against an AMQP topic pattern.

    Words are separated by dots; ``*`` matches exactly one word and ``#``
    matches zero or more words.
    """
    return _match_words(tuple(pattern.split(".")), tuple(routing_key.split(".")))


def _match_words(pattern: tuple[str, ...], words: tuple[str, ...]) -> bool:
    if not pattern:
        return not words

    head, rest = pattern[0], pattern[1:]
    if head == "#":
        return any(_match_words(rest, words[i:]) for i in range(len(words) + 1))
    if not words:
        return False
    if head in ("*", words[0]):
        return _match_words(rest, words[1:])
    return False


class BrokerMessage(BaseModel):
    """A message held by ``InMemoryBroker``."""

    model_config = ConfigDict(frozen=True)

    body: bytes
    exchange: str
    routing_key: str
    delivery_tag: int
    headers: dict[str, Any] = Field(default_factory=dict)

    @property
    def death_count(self) -> int:
        return sum(entry.get("count", 1) for entry in self.headers.get("x-death", []))


class InMemoryBroker:
    """Process-local broker honouring a ``BrokerTopology``.

    Implements the ``BrokerClient`` protocol plus a minimal consumer side
    (``consume``) with prefetch and reject-to-dead-letter semantics.
    """

    def __init__(self, topology: BrokerTopology | None = None):
        self._exchanges: dict[str, Exchange] = {}
        self._queues: dict[str, Queue] = {}
        self._bindings: list[Binding] = []
        self._messages: dict[str, deque[BrokerMessage]] = {}
        self._confirm_callbacks: list[ConfirmCallback] = []
        self._return_callbacks: list[ReturnCallback] = []
        self._delivery_tags = count(1)
        self._lock = threading.RLock()
        if topology is not None:
            self.declare(topology)

    def declare(self, topology: BrokerTopology) -> None:
        """Declare every exchange, queue and binding of a topology (idempotent)."""
        with self._lock:
            for exchange in topology.exchanges:
                self._exchanges[exchange.name] = exchange
            for queue in topology.queues:
                self._queues[queue.name] = queue
                self._messages.setdefault(queue.name, deque())
            for binding in topology.bindings:
                if binding not in self._bindings:
                    self._bindings.append(binding)
        logger.debug(
            f"Declared broker topology: {len(topology.exchanges)} exchanges, "
            f"{len(topology.queues)} queues, {len(topology.bindings)} bindings"
        )

    def on_confirm(self, callback: ConfirmCallback) -> None:
        with self._lock:
            if callback not in self._confirm_callbacks:
                self._confirm_callbacks.append(callback)

    def on_return(self, callback: ReturnCallback) -> None:
        with self._lock:
            if callback not in self._return_callbacks:
                self._return_callbacks.append(callback)

    def send(self, payload: bytes, exchange: str, routing_key: str, headers: dict[str, Any] | None = None) -> None:
        """Publish a message.

        Raises:
            ValueError: If the exchange was never declared
        """
        with self._lock:
            if exchange not in self._exchanges:
                raise ValueError(f"Exchange {exchange} is not declared")

            message = BrokerMessage(
                body=payload,
                exchange=exchange,
                routing_key=routing_key,
                delivery_tag=next(self._delivery_tags),
                headers=dict(headers or {}),
            )
            routed = self._route(exchange, message, visited=set())

        if not routed:
            for callback in list(self._return_callbacks):
                callback(message, NO_ROUTE_REPLY_CODE, "NO_ROUTE", exchange, routing_key)
        for callback in list(self._confirm_callbacks):
            callback(message.delivery_tag, True, None)

    def _route(self, exchange_name: str, message: BrokerMessage, visited: set[str]) -> bool:
        visited.add(exchange_name)
        exchange = self._exchanges[exchange_name]

        targets = [
            binding.queue
            for binding in self._bindings
            if binding.exchange == exchange_name and self._binding_matches(exchange, binding, message.routing_key)
        ]
        for queue_name in dict.fromkeys(targets):
            self._messages[queue_name].append(message)

        if targets:
            return True

        alternate = exchange.alternate_exchange
        if alternate and alternate in self._exchanges and alternate not in visited:
            logger.debug(f"Unroutable message {message.routing_key} on {exchange_name}, using alternate exchange {alternate}")
            return self._route(alternate, message, visited)
        return False

    @staticmethod
    def _binding_matches(exchange: Exchange, binding: Binding, routing_key: str) -> bool:
        if exchange.type == "fanout":
            return True
        if exchange.type == "direct":
            return binding.pattern == routing_key
        return topic_matches(binding.pattern, routing_key)

    def messages(self, queue: str) -> list[BrokerMessage]:
        """Return the messages waiting in a queue without consuming them."""
        with self._lock:
            return list(self._messages.get(queue, ()))

    def get(self, queue: str) -> BrokerMessage | None:
        """Pop the next message from a queue."""
        with self._lock:
            pending = self._messages.get(queue)
            return pending.popleft() if pending else None

    def reject(self, message: BrokerMessage, queue: str) -> bool:
        """Reject a message without requeueing it.

        The message is dead-lettered to the queue's dead-letter exchange with
        an ``x-death`` entry appended. Returns False when the queue has no
        dead-letter exchange and the message is discarded.
        """
        with self._lock:
            declaration = self._queues.get(queue)
            if declaration is None or not declaration.dead_letter_exchange:
                logger.warning(f"Discarding rejected message {message.delivery_tag} from {queue}: no dead-letter exchange")
                return False

            headers = dict(message.headers)
            headers["x-death"] = [
                *headers.get("x-death", []),
                {"queue": queue, "reason": "rejected", "exchange": message.exchange, "routing-keys": [message.routing_key], "count": 1},
            ]
            routing_key = declaration.dead_letter_routing_key or message.routing_key
            dead_letter_exchange = declaration.dead_letter_exchange

        logger.info(f"Dead-lettering message {message.delivery_tag} from {queue} to {dead_letter_exchange}")
        self.send(message.body, dead_letter_exchange, routing_key, headers=headers)
        return True

    def consume(self, queue: str, on_message: Callable[[bytes, str], bool], prefetch: int = 10) -> int:
        """Deliver up to ``prefetch`` messages from a queue to a listener.

        A listener returning False rejects the message (dead-lettering it).

        Returns:
            Number of messages delivered
        """
        delivered = 0
        while delivered < prefetch:
            message = self.get(queue)
            if message is None:
                break
            delivered += 1
            if not on_message(message.body, message.routing_key):
                self.reject(message, queue)
        return delivered


class BrokerChannel(ChannelAdapter):
    """Publishes events to the broker's events exchange.

    Publisher confirms and returns are logged through the client's callbacks.
    """

    def __init__(self, client: BrokerClient, exchange: str, name: str = "broker", is_critical: bool = True):
        super().__init__(name, is_critical=is_critical)
        self._client = client
        self.exchange = exchange
        client.on_confirm(self._log_confirm)
        client.on_return(self._log_return)

    def send(self, serialized: SerializedEvent, routing_key: str) -> None:
        self._client.send(serialized.body_bytes, self.exchange, routing_key)
        logger.debug(f"Event published to broker: {routing_key} -> {serialized.event_id}")

    @staticmethod
    def _log_confirm(delivery_tag: int, ack: bool, cause: str | None) -> None:
        if ack:
            logger.debug(f"Message confirmed: {delivery_tag}")
        else:
            logger.error(f"Message not confirmed: {delivery_tag} - {cause}")

    @staticmethod
    def _log_return(message: BrokerMessage, reply_code: int, reply_text: str, exchange: str, routing_key: str) -> None:
        logger.error(f"Message returned: {reply_code} {reply_text} {exchange} {routing_key} {message.delivery_tag}")
