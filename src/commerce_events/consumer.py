"""Consumer-side glue between a broker queue and the dispatcher.

``EventListener.on_message`` is what a broker consumer calls for each
delivery. It decodes the payload, skips events already marked as processed,
dispatches under a stateless retry policy and tells the broker whether to
acknowledge (True) or reject (False) the message. Rejected messages are
dead-lettered by the queue's topology.
"""

from loguru import logger
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from commerce_events.dispatcher import DispatchResult, EventDispatcher
from commerce_events.events import BaseEvent, EventCodec
from commerce_events.exceptions import EventDecodeError, HandlerFailuresError
from commerce_events.publisher import EventPublisher
from commerce_events.settings import Settings, get_settings


class EventListener:
    """Turns broker deliveries into dispatches.

    Args:
        dispatcher: Dispatcher invoked for each decoded event
        publisher: Publisher providing idempotency bookkeeping
        codec: Event codec (defaults to ``EventCodec()``)
        settings: Explicit configuration (defaults to ``get_settings()``)
    """

    def __init__(
        self,
        dispatcher: EventDispatcher,
        publisher: EventPublisher,
        codec: EventCodec | None = None,
        settings: Settings | None = None,
    ):
        self._dispatcher = dispatcher
        self._publisher = publisher
        self._codec = codec or EventCodec()
        self._settings = settings or get_settings()

    def on_message(self, body: bytes | str, routing_key: str) -> bool:
        """Handle one delivery.

        Args:
            body: Raw message body
            routing_key: Routing key the message was delivered with

        Returns:
            True to acknowledge, False to reject without requeueing
        """
        try:
            event = self._codec.decode(body)
        except EventDecodeError as e:
            logger.error(f"Rejecting undecodable message on {routing_key}: {e}")
            return False

        if self._publisher.is_event_processed(event.event_id):
            logger.info(f"Skipping already processed event: {event.event_type} - {event.event_id}")
            return True

        try:
            self._retrying(event)(self._dispatch, event)
        except HandlerFailuresError as e:
            logger.error(f"Giving up on event {event.event_type} - {event.event_id} after {self._settings.listener_max_attempts} attempts: {e}")
            return False

        self._publisher.mark_event_processed(event.event_id)
        return True

    def _retrying(self, event: BaseEvent) -> Retrying:
        def log_attempt(retry_state: RetryCallState) -> None:
            logger.warning(
                f"Delivery attempt {retry_state.attempt_number} failed for {event.event_type} - {event.event_id}: "
                f"{retry_state.outcome.exception() if retry_state.outcome else None}"
            )

        return Retrying(
            stop=stop_after_attempt(self._settings.listener_max_attempts),
            wait=wait_exponential(
                multiplier=self._settings.listener_initial_interval_seconds,
                exp_base=self._settings.listener_multiplier,
                max=self._settings.listener_max_interval_seconds,
            ),
            retry=retry_if_exception_type(HandlerFailuresError),
            after=log_attempt,
            reraise=True,
        )

    def _dispatch(self, event: BaseEvent) -> DispatchResult:
        result = self._dispatcher.dispatch(event)
        if self._settings.listener_fail_on_handler_error and result.failed_handlers:
            raise HandlerFailuresError(event.event_type, result.failed_handlers)
        return result
