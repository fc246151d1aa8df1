"""Event Dispatcher.

Routes an event to the registered handlers that apply to it, in ascending
priority order, synchronously on the caller's thread or on a bounded worker
pool.

## Key Features

- **Live Discovery**: The handler registry is read on every dispatch, so
  handlers registered later are picked up without a restart
- **Priority Ordering**: Lower priority values run first; ties keep
  registration order
- **Error Isolation**: A failing handler is logged with its elapsed time and
  the remaining handlers still run
- **Bounded Async Pool**: ``dispatch_async`` rejects work once the worker pool
  and its waiting room are full
- **Timing**: Every handler invocation is timed and logged; slow handlers are
  reported as warnings

## Usage

```python
registry = HandlerRegistry()
registry.register(ReserveStockHandler(inventory))

with EventDispatcher(registry, settings) as dispatcher:
    result = dispatcher.dispatch(event)
    future = dispatcher.dispatch_async(other_event)
    dispatcher.dispatch_and_wait(third_event, timeout=5.0)
```
"""

import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, wait
from datetime import timedelta

import arrow
from loguru import logger
from pydantic import BaseModel, Field

from commerce_events.events import BaseEvent
from commerce_events.exceptions import DispatcherShutdownError, DispatchRejectedError
from commerce_events.handlers import EventHandler, HandlerRegistry, get_handler_registry
from commerce_events.settings import Settings, get_settings


class HandlerOutcome(BaseModel):
    """Result of invoking one handler."""

    handler_name: str
    priority: int
    success: bool
    error: str | None = None
    error_type: str | None = None
    executed_at: str | None = None  # ISO 8601 UTC timestamp
    execution_time_ms: float | None = None


class DispatchResult(BaseModel):
    """Result of dispatching one event.

    An empty ``outcomes`` list means no handler applied to the event.
    """

    event_id: str
    event_type: str
    outcomes: list[HandlerOutcome] = Field(default_factory=list)
    executed_at: str = Field(default_factory=lambda: arrow.utcnow().isoformat())
    execution_time_ms: float | None = None

    @property
    def handled(self) -> bool:
        return bool(self.outcomes)

    @property
    def successful_handlers(self) -> list[str]:
        return [outcome.handler_name for outcome in self.outcomes if outcome.success]

    @property
    def failed_handlers(self) -> list[str]:
        return [outcome.handler_name for outcome in self.outcomes if not outcome.success]


class EventDispatcher:
    """Dispatches events to the handlers of a ``HandlerRegistry``.

    Args:
        registry: Handler registry to discover handlers from (defaults to the global one)
        settings: Explicit configuration (defaults to ``get_settings()``)
    """

    def __init__(self, registry: HandlerRegistry | None = None, settings: Settings | None = None):
        self._registry = registry or get_handler_registry()
        self._settings = settings or get_settings()

        max_workers = self._settings.dispatcher_max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="event-dispatch")
        self._slots = threading.BoundedSemaphore(max_workers + self._settings.dispatcher_max_pending)
        self._in_flight: set[Future] = set()
        self._state_lock = threading.Lock()
        self._shutdown = False
        logger.debug(f"EventDispatcher initialized (max_workers={max_workers}, max_pending={self._settings.dispatcher_max_pending})")

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def dispatch(self, event: BaseEvent) -> DispatchResult:
        """Dispatch an event synchronously to every applicable handler.

        Handler failures are logged and reported in the result; they are never raised.

        Args:
            event: The event to dispatch

        Returns:
            One outcome per invoked handler, in invocation order
        """
        return self._invoke_all(event, self._find_handlers(event))

    def dispatch_async(self, event: BaseEvent) -> Future[DispatchResult]:
        """Dispatch an event on the worker pool.

        Returns:
            A future completing with the ``DispatchResult``

        Raises:
            DispatchRejectedError: If the pool and its waiting room are full
            DispatcherShutdownError: If the dispatcher was shut down
        """
        with self._state_lock:
            if self._shutdown:
                raise DispatcherShutdownError(f"Cannot dispatch {event.event_type}: dispatcher is shut down")

            if not self._slots.acquire(blocking=False):
                logger.warning(f"Async dispatch rejected, worker pool saturated: {event.event_type} - {event.event_id}")
                raise DispatchRejectedError(f"Async dispatch of {event.event_type} rejected: worker pool saturated")

            try:
                future = self._executor.submit(self.dispatch, event)
            except RuntimeError as e:
                self._slots.release()
                raise DispatcherShutdownError(f"Cannot dispatch {event.event_type}: worker pool is shut down") from e
            self._in_flight.add(future)

        future.add_done_callback(self._release_slot)
        return future

    def dispatch_to_specific_handler(self, event: BaseEvent, event_type: type[BaseEvent]) -> DispatchResult:
        """Dispatch an event only to handlers declared for exactly ``event_type``.

        The ``can_handle`` predicate is not consulted.
        """
        handlers = sorted(self._registry.handlers_for(event_type), key=lambda handler: handler.priority)
        return self._invoke_all(event, handlers)

    def dispatch_and_wait(self, event: BaseEvent, timeout: float | timedelta) -> DispatchResult | None:
        """Dispatch an event asynchronously and wait for completion.

        Timeouts, rejected submissions and execution faults are logged, never raised.

        Args:
            event: The event to dispatch
            timeout: Maximum wait, in seconds or as a ``timedelta``

        Returns:
            The dispatch result, or None if it was not available in time
        """
        seconds = timeout.total_seconds() if isinstance(timeout, timedelta) else float(timeout)

        try:
            future = self.dispatch_async(event)
        except (DispatchRejectedError, DispatcherShutdownError) as e:
            logger.error(f"Failed to schedule event handlers: {event.event_type} - {e}")
            return None

        try:
            return future.result(timeout=seconds)
        except TimeoutError:
            logger.error(f"Timed out after {seconds:g}s waiting for event handlers to complete: {event.event_type}")
        except CancelledError:
            logger.error(f"Event dispatch was cancelled before completion: {event.event_type}")
        except Exception as e:
            logger.opt(exception=e).error(f"Failed to wait for event handlers to complete: {event.event_type}")
        return None

    def shutdown(self, grace_period: float | None = None) -> bool:
        """Stop accepting async work and wait for in-flight dispatches.

        Queued dispatches that have not started are cancelled once the grace
        period elapses. Running handlers cannot be interrupted and finish on
        their own. If the wait is interrupted, the pool is forced down and the
        interrupt is re-raised.

        Args:
            grace_period: Seconds to wait (defaults to ``shutdown_grace_period_seconds``)

        Returns:
            True if every in-flight dispatch completed within the grace period
        """
        grace = self._settings.shutdown_grace_period_seconds if grace_period is None else grace_period

        with self._state_lock:
            already_shutdown = self._shutdown
            self._shutdown = True
            pending = set(self._in_flight)
        if already_shutdown:
            return not pending

        logger.debug(f"Shutting down EventDispatcher ({len(pending)} dispatch(es) in flight)")
        try:
            _, not_done = wait(pending, timeout=grace)
        except KeyboardInterrupt:
            logger.warning("EventDispatcher shutdown interrupted, forcing termination")
            self._executor.shutdown(wait=False, cancel_futures=True)
            raise

        if not_done:
            logger.warning(f"{len(not_done)} dispatch(es) still running after {grace:g}s, forcing termination")
            self._executor.shutdown(wait=False, cancel_futures=True)
            return False

        self._executor.shutdown(wait=True)
        logger.debug("EventDispatcher shutdown complete")
        return True

    def __enter__(self) -> "EventDispatcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def _release_slot(self, future: Future) -> None:
        with self._state_lock:
            self._in_flight.discard(future)
        self._slots.release()

    def _find_handlers(self, event: BaseEvent) -> list[EventHandler]:
        applicable = [handler for handler in self._registry.all_handlers() if self._applies(handler, event)]
        # sorted() is stable, so equal priorities keep registration order
        return sorted(applicable, key=lambda handler: handler.priority)

    @staticmethod
    def _applies(handler: EventHandler, event: BaseEvent) -> bool:
        try:
            return handler.can_handle(event)
        except Exception as e:
            logger.opt(exception=e).error(f"Handler {handler.name} failed to evaluate can_handle for {event.event_type}")
            return False

    def _invoke_all(self, event: BaseEvent, handlers: list[EventHandler]) -> DispatchResult:
        start_time = arrow.utcnow().float_timestamp

        if not handlers:
            logger.warning(f"No handlers found for event type: {event.event_type}")
            return DispatchResult(event_id=event.event_id, event_type=event.event_type, execution_time_ms=0.0)

        outcomes = [self._invoke_handler(event, handler) for handler in handlers]
        result = DispatchResult(
            event_id=event.event_id,
            event_type=event.event_type,
            outcomes=outcomes,
            execution_time_ms=(arrow.utcnow().float_timestamp - start_time) * 1000,
        )

        if result.failed_handlers:
            logger.warning(
                f"Event {event.event_type}: {len(result.successful_handlers)} successful, {len(result.failed_handlers)} failed handlers"
            )
        return result

    def _invoke_handler(self, event: BaseEvent, handler: EventHandler) -> HandlerOutcome:
        logger.debug(f"Dispatching event {event.event_type} to handler {handler.name}")
        executed_at = arrow.utcnow().isoformat()
        start_time = arrow.utcnow().float_timestamp

        try:
            handler.handle(event)
        except Exception as e:
            duration_ms = (arrow.utcnow().float_timestamp - start_time) * 1000
            logger.opt(exception=e).error(f"Handler {handler.name} failed to process event {event.event_type} in {duration_ms:.1f}ms")
            return HandlerOutcome(
                handler_name=handler.name,
                priority=handler.priority,
                success=False,
                error=str(e),
                error_type=type(e).__name__,
                executed_at=executed_at,
                execution_time_ms=duration_ms,
            )

        duration_ms = (arrow.utcnow().float_timestamp - start_time) * 1000
        threshold_ms = self._settings.slow_handler_threshold_ms
        if threshold_ms and duration_ms >= threshold_ms:
            logger.warning(f"Slow handler {handler.name} processed event {event.event_type} in {duration_ms:.1f}ms")
        else:
            logger.debug(f"Handler {handler.name} processed event {event.event_type} in {duration_ms:.1f}ms")

        return HandlerOutcome(
            handler_name=handler.name,
            priority=handler.priority,
            success=True,
            executed_at=executed_at,
            execution_time_ms=duration_ms,
        )
