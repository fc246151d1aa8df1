"""Event Publisher.

Fans an event out to every configured channel adapter, isolating per-channel
failures, and offers delayed publication, retry with exponential backoff,
idempotency bookkeeping and short-term replay on top of the cache collaborator.

## Failure policy

Every channel is attempted in configuration order regardless of earlier
failures. Each failure is logged and recorded as a ``ChannelSendFailure``.
The call raises ``PublishError`` only when at least one *critical* channel
failed; by default only the broker channel is critical.

## Usage

```python
publisher = EventPublisher.build(
    settings,
    broker=InMemoryBroker(BrokerTopology.default(settings)),
    bridge=InMemoryStreamBridge(),
    cache=InMemoryCacheStore(),
)
publisher.publish(OrderCreatedEvent.from_source("order-service", order_id="O-1"))
publisher.publish_with_retry(event, max_retries=3)
```
"""

import threading
from collections.abc import Sequence
from datetime import timedelta

import arrow
from loguru import logger
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, stop_when_event_set, wait_exponential

from commerce_events.cache import CacheStore
from commerce_events.channels import (
    BrokerChannel,
    BrokerClient,
    CacheChannel,
    ChannelAdapter,
    ChannelSendFailure,
    LogChannel,
    LogProducer,
    StreamBridge,
    StreamBridgeChannel,
    event_key,
    recent_events_key,
)
from commerce_events.events import BaseEvent, EventCodec
from commerce_events.exceptions import EventDecodeError, PublishError
from commerce_events.settings import Settings, get_settings

DELAYED_EVENT_PREFIX = "delayed-event"


def processed_event_key(event_id: str) -> str:
    return f"processed-event:{event_id}"


def delayed_event_key(due_epoch_millis: int, event_id: str) -> str:
    return f"{DELAYED_EVENT_PREFIX}:{due_epoch_millis}:{event_id}"


class _RetryCancelled(Exception):
    """Raised from the backoff sleep when the caller cancels a retry loop."""


class EventPublisher:
    """Publishes events to all configured channels.

    Args:
        channels: Channel adapters, attempted in this order
        cache: Cache collaborator for delayed events, idempotency marks and replay
        codec: Event codec (defaults to ``EventCodec()``)
        settings: Explicit configuration (defaults to ``get_settings()``)
    """

    def __init__(
        self,
        channels: Sequence[ChannelAdapter],
        cache: CacheStore | None = None,
        codec: EventCodec | None = None,
        settings: Settings | None = None,
    ):
        if not channels:
            raise ValueError("EventPublisher requires at least one channel")

        self._channels = tuple(channels)
        self._cache = cache
        self._codec = codec or EventCodec()
        self._settings = settings or get_settings()
        logger.debug(f"EventPublisher initialized with channels: {', '.join(channel.name for channel in self._channels)}")

    @classmethod
    def build(
        cls,
        settings: Settings,
        broker: BrokerClient,
        bridge: StreamBridge | None = None,
        cache: CacheStore | None = None,
        log_producer: LogProducer | None = None,
        codec: EventCodec | None = None,
    ) -> "EventPublisher":
        """Assemble a publisher with the standard channel set.

        Channel order is broker, stream bridge, cache, log. The cache channel is
        added when ``settings.cache_enabled`` and a cache is given; the log
        channel when ``settings.log_channel_enabled`` and a producer is given.
        """
        channels: list[ChannelAdapter] = [BrokerChannel(broker, settings.broker_exchange)]

        if bridge is not None:
            channels.append(StreamBridgeChannel(bridge, settings.stream_bridge_binding))

        if settings.cache_enabled and cache is not None:
            channels.append(
                CacheChannel(
                    cache,
                    event_ttl=settings.cache_event_ttl,
                    recent_events_ttl=settings.recent_events_ttl,
                    recent_events_max_length=settings.recent_events_max_length,
                )
            )

        if settings.log_channel_enabled:
            if log_producer is None:
                logger.warning("Log channel enabled but no log producer configured, skipping it")
            else:
                channels.append(LogChannel(log_producer, settings.log_channel_topic))

        return cls(channels, cache=cache, codec=codec, settings=settings)

    @property
    def channels(self) -> tuple[ChannelAdapter, ...]:
        return self._channels

    def publish(self, event: BaseEvent, routing_key: str | None = None) -> None:
        """Publish an event to every channel.

        Args:
            event: The event to publish
            routing_key: Routing key, defaults to ``event.event_type``

        Raises:
            PublishError: If the event cannot be encoded or a critical channel failed
        """
        routing_key = routing_key or event.event_type

        try:
            serialized = self._codec.serialize(event)
        except (ValueError, TypeError) as e:
            logger.error(f"Failed to encode event: {event.event_type} - {e}")
            raise PublishError(f"Failed to encode event: {event.event_type}", event_type=event.event_type, routing_key=routing_key) from e

        failures: list[ChannelSendFailure] = []
        for channel in self._channels:
            try:
                channel.send(serialized, routing_key)
            except Exception as e:
                failures.append(
                    ChannelSendFailure(
                        channel=channel.name,
                        routing_key=routing_key,
                        event_id=event.event_id,
                        is_critical=channel.is_critical,
                        error=e,
                    )
                )
                logger.opt(exception=e).error(f"Failed to publish event to {channel.name}: {routing_key} - {event.event_id}")

        critical_failures = [failure for failure in failures if failure.is_critical]
        if critical_failures:
            logger.error(
                f"Failed to publish event: {event.event_type} - {event.event_id} "
                f"(critical channel failures: {', '.join(failure.channel for failure in critical_failures)})"
            )
            raise PublishError(
                f"Failed to publish event: {event.event_type}",
                event_type=event.event_type,
                routing_key=routing_key,
                payload=serialized.body,
                failures=failures,
            ) from critical_failures[-1].error

        if failures:
            logger.warning(f"Event published with {len(failures)} non-critical channel failure(s): {event.event_type} - {event.event_id}")
        else:
            logger.debug(f"Event published successfully: {event.event_type} - {event.event_id}")

    def publish_with_delay(self, event: BaseEvent, delay: timedelta) -> str:
        """Stage an event in the cache for later publication.

        The serialized event is stored under ``delayed-event:<due-epoch-millis>:<event_id>``
        with a TTL equal to ``delay``. Promoting due entries to ``publish`` is the
        job of an external sweeper; this call returns immediately.

        Returns:
            The staging key

        Raises:
            ValueError: If ``delay`` is not positive
            PublishError: If no cache is configured or staging fails
        """
        if delay <= timedelta(0):
            raise ValueError(f"Delay must be positive, got {delay}")
        if self._cache is None:
            raise PublishError("Delayed publication requires a cache store", event_type=event.event_type)

        due_epoch_millis = int(arrow.utcnow().float_timestamp * 1000) + int(delay.total_seconds() * 1000)
        key = delayed_event_key(due_epoch_millis, event.event_id)
        try:
            self._cache.set(key, self._codec.encode(event), ttl=delay)
        except Exception as e:
            logger.opt(exception=e).error(f"Failed to stage delayed event: {event.event_type} - {event.event_id}")
            raise PublishError(f"Failed to stage delayed event: {event.event_type}", event_type=event.event_type) from e

        logger.info(f"Event scheduled for delayed publication: {event.event_type} in {delay.total_seconds():g} seconds")
        return key

    def publish_with_retry(self, event: BaseEvent, max_retries: int, cancel: threading.Event | None = None) -> None:
        """Publish an event, retrying failures with exponential backoff.

        The wait before attempt ``n + 1`` is ``base * 2 ** (n - 1)`` seconds, with
        ``base`` taken from ``retry_base_delay_seconds``. Setting ``cancel``
        interrupts a pending wait and ends the loop without further attempts.

        Args:
            event: The event to publish
            max_retries: Total number of attempts (at least 1)
            cancel: Optional cancellation flag shared with the caller

        Raises:
            ValueError: If ``max_retries`` is smaller than 1
            PublishError: After the last attempt failed or the loop was
                cancelled; the last publish failure is chained as the cause
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")

        cancel = cancel or threading.Event()
        last_failure: PublishError | None = None
        attempts = 0

        def record_failure(retry_state: RetryCallState) -> None:
            nonlocal last_failure, attempts
            attempts = retry_state.attempt_number
            last_failure = retry_state.outcome.exception()  # type: ignore[union-attr,assignment]
            logger.warning(f"Event publishing attempt {attempts} failed: {event.event_type} - {last_failure}")

        retrying = Retrying(
            stop=stop_after_attempt(max_retries) | stop_when_event_set(cancel),
            wait=wait_exponential(multiplier=self._settings.retry_base_delay_seconds, exp_base=2),
            retry=retry_if_exception_type(PublishError),
            sleep=lambda seconds: self._interruptible_sleep(cancel, seconds),
            after=record_failure,
            reraise=True,
        )

        try:
            retrying(self.publish, event)
            return
        except PublishError:
            pass
        except _RetryCancelled:
            logger.warning(f"Event publishing retry cancelled after {attempts} attempt(s): {event.event_type}")

        logger.error(f"Failed to publish event after {attempts} attempts: {event.event_type}")
        raise PublishError(
            f"Event publishing failed after {attempts} attempts",
            event_type=event.event_type,
            routing_key=last_failure.routing_key if last_failure else None,
            payload=last_failure.payload if last_failure else None,
            failures=last_failure.failures if last_failure else None,
        ) from last_failure

    @staticmethod
    def _interruptible_sleep(cancel: threading.Event, seconds: float) -> None:
        if cancel.wait(seconds):
            raise _RetryCancelled()

    def is_event_processed(self, event_id: str) -> bool:
        """Check the idempotency mark of an event.

        Cache failures are logged and reported as "not processed", so an
        unavailable cache leads to reprocessing rather than skipping.
        """
        if self._cache is None:
            return False
        try:
            return self._cache.exists(processed_event_key(event_id))
        except Exception as e:
            logger.opt(exception=e).warning(f"Failed to check event processing status: {event_id}")
            return False

    def mark_event_processed(self, event_id: str) -> None:
        """Set the idempotency mark of an event. Cache failures are logged and ignored."""
        if self._cache is None:
            logger.warning(f"No cache configured, cannot mark event as processed: {event_id}")
            return
        try:
            self._cache.set(processed_event_key(event_id), "true", ttl=self._settings.processed_event_ttl)
        except Exception as e:
            logger.opt(exception=e).warning(f"Failed to mark event as processed: {event_id}")

    def recent_events(self, event_type: str, limit: int = 10) -> list[BaseEvent]:
        """Return up to ``limit`` recently published events of a type, newest first.

        Entries that no longer decode are skipped.
        """
        if self._cache is None or limit < 1:
            return []

        events: list[BaseEvent] = []
        for body in self._cache.list_range(recent_events_key(event_type), 0, limit - 1):
            try:
                events.append(self._codec.decode(body))
            except EventDecodeError as e:
                logger.warning(f"Skipping undecodable cached event of type {event_type}: {e}")
        return events

    def cached_event(self, event_type: str, event_id: str) -> BaseEvent | None:
        """Return a recently published event from the cache, if still present."""
        if self._cache is None:
            return None
        body = self._cache.get(event_key(event_type, event_id))
        return self._codec.decode(body) if body is not None else None
