"""Tests for EventDispatcher."""

import threading
import time
from concurrent.futures import Future
from datetime import timedelta

import pytest

from commerce_events.dispatcher import DispatchResult, EventDispatcher
from commerce_events.events import OrderCreatedEvent, ProductCreatedEvent, UserRegisteredEvent
from commerce_events.exceptions import DispatcherShutdownError, DispatchRejectedError
from commerce_events.handlers import HandlerRegistry


@pytest.fixture
def registry() -> HandlerRegistry:
    return HandlerRegistry()


@pytest.fixture
def dispatcher(registry, settings):
    dispatcher = EventDispatcher(registry, settings)
    yield dispatcher
    dispatcher.shutdown(grace_period=5)


class TestSynchronousDispatch:
    """Priority ordering and error isolation on the caller's thread."""

    def test_runs_handlers_in_priority_order(self, dispatcher, registry, make_handler, call_log):
        for label, priority in (("p50", 50), ("p10", 10), ("p100", 100)):
            registry.register(make_handler(OrderCreatedEvent, label, priority))

        result = dispatcher.dispatch(OrderCreatedEvent())

        assert call_log == ["p10", "p50", "p100"]
        assert [outcome.priority for outcome in result.outcomes] == [10, 50, 100]

    def test_failing_handler_does_not_stop_others(self, dispatcher, registry, make_handler, call_log):
        registry.register(make_handler(OrderCreatedEvent, "p50", 50))
        registry.register(make_handler(OrderCreatedEvent, "p10", 10, fail=True))
        registry.register(make_handler(OrderCreatedEvent, "p100", 100))

        result = dispatcher.dispatch(OrderCreatedEvent())

        assert call_log == ["p10", "p50", "p100"]
        assert result.failed_handlers == ["p10"]
        assert result.successful_handlers == ["p50", "p100"]
        failed = result.outcomes[0]
        assert failed.error == "p10 failed"
        assert failed.error_type == "RuntimeError"

    def test_failure_logged(self, dispatcher, registry, make_handler, log_records):
        registry.register(make_handler(OrderCreatedEvent, "broken", fail=True))

        dispatcher.dispatch(OrderCreatedEvent())

        assert any(level == "ERROR" and "Handler broken failed to process event ORDER_CREATED" in message for level, message in log_records)

    def test_no_handlers_returns_empty_result_and_warns(self, dispatcher, log_records):
        event = ProductCreatedEvent()

        result = dispatcher.dispatch(event)

        assert isinstance(result, DispatchResult)
        assert result.outcomes == []
        assert not result.handled
        assert result.event_id == event.event_id
        assert ("WARNING", "No handlers found for event type: PRODUCT_CREATED") in log_records

    def test_equal_priorities_keep_registration_order(self, dispatcher, registry, make_handler, call_log):
        registry.register(make_handler(UserRegisteredEvent, "welcome-email", 5))
        registry.register(make_handler(UserRegisteredEvent, "crm-sync", 5))

        for _ in range(20):
            dispatcher.dispatch(UserRegisteredEvent())

        assert call_log == ["welcome-email", "crm-sync"] * 20

    def test_only_applicable_handlers_run(self, dispatcher, registry, make_handler, call_log):
        registry.register(make_handler(OrderCreatedEvent, "order"))
        registry.register(make_handler(UserRegisteredEvent, "user"))

        dispatcher.dispatch(OrderCreatedEvent())

        assert call_log == ["order"]

    def test_can_handle_predicate(self, dispatcher, registry, make_handler, call_log):
        registry.register(make_handler(OrderCreatedEvent, "usd-only", predicate=lambda event: event.currency == "USD"))

        dispatcher.dispatch(OrderCreatedEvent(currency="EUR"))
        dispatcher.dispatch(OrderCreatedEvent(currency="USD"))

        assert call_log == ["usd-only"]

    def test_can_handle_error_skips_handler(self, dispatcher, registry, make_handler, call_log, log_records):
        def explode(event):
            raise KeyError("missing")

        registry.register(make_handler(OrderCreatedEvent, "broken-predicate", predicate=explode))
        registry.register(make_handler(OrderCreatedEvent, "healthy"))

        result = dispatcher.dispatch(OrderCreatedEvent())

        assert call_log == ["healthy"]
        assert result.successful_handlers == ["healthy"]
        assert any(level == "ERROR" and "failed to evaluate can_handle" in message for level, message in log_records)

    def test_handlers_registered_later_are_discovered(self, dispatcher, registry, make_handler, call_log):
        dispatcher.dispatch(OrderCreatedEvent())
        registry.register(make_handler(OrderCreatedEvent, "late"))

        dispatcher.dispatch(OrderCreatedEvent())

        assert call_log == ["late"]

    def test_outcomes_are_timed(self, dispatcher, registry, make_handler):
        registry.register(make_handler(OrderCreatedEvent, "timed"))

        result = dispatcher.dispatch(OrderCreatedEvent())

        outcome = result.outcomes[0]
        assert outcome.executed_at is not None
        assert outcome.execution_time_ms >= 0
        assert result.execution_time_ms >= 0

    def test_slow_handler_warning(self, registry, settings, make_handler, log_records):
        slow_settings = settings.model_copy(update={"slow_handler_threshold_ms": 1.0})
        gate = threading.Event()
        threading.Timer(0.05, gate.set).start()
        registry.register(make_handler(OrderCreatedEvent, "sluggish", gate=gate))

        with EventDispatcher(registry, slow_settings) as dispatcher:
            dispatcher.dispatch(OrderCreatedEvent())

        assert any(level == "WARNING" and message.startswith("Slow handler sluggish") for level, message in log_records)


class TestDispatchToSpecificHandler:
    """Dispatch restricted to one declared event type."""

    def test_exact_type_only(self, dispatcher, registry, make_handler, call_log):
        registry.register(make_handler(OrderCreatedEvent, "order-b", 20))
        registry.register(make_handler(UserRegisteredEvent, "user"))
        registry.register(make_handler(OrderCreatedEvent, "order-a", 10))

        result = dispatcher.dispatch_to_specific_handler(OrderCreatedEvent(), OrderCreatedEvent)

        assert call_log == ["order-a", "order-b"]
        assert result.successful_handlers == ["order-a", "order-b"]

    def test_ignores_predicate(self, dispatcher, registry, make_handler, call_log):
        registry.register(make_handler(OrderCreatedEvent, "never", predicate=lambda event: False))

        dispatcher.dispatch_to_specific_handler(OrderCreatedEvent(), OrderCreatedEvent)

        assert call_log == ["never"]

    def test_no_matching_handlers(self, dispatcher, registry, make_handler, log_records):
        registry.register(make_handler(UserRegisteredEvent, "user"))

        result = dispatcher.dispatch_to_specific_handler(OrderCreatedEvent(), OrderCreatedEvent)

        assert not result.handled
        assert ("WARNING", "No handlers found for event type: ORDER_CREATED") in log_records


class TestAsyncDispatch:
    """Worker pool dispatch, bounded waiting and shutdown."""

    def test_dispatch_async_returns_future(self, dispatcher, registry, make_handler):
        handler = make_handler(OrderCreatedEvent, "async")
        registry.register(handler)

        future = dispatcher.dispatch_async(OrderCreatedEvent())

        assert isinstance(future, Future)
        result = future.result(timeout=5)
        assert result.successful_handlers == ["async"]
        assert handler.threads[0].startswith("event-dispatch")

    def test_saturated_pool_rejects(self, registry, settings, make_handler):
        gate = threading.Event()
        registry.register(make_handler(OrderCreatedEvent, "blocking", gate=gate))
        tight = settings.model_copy(update={"dispatcher_max_workers": 1, "dispatcher_max_pending": 0})

        with EventDispatcher(registry, tight) as dispatcher:
            first = dispatcher.dispatch_async(OrderCreatedEvent())
            with pytest.raises(DispatchRejectedError):
                dispatcher.dispatch_async(OrderCreatedEvent())
            gate.set()
            assert first.result(timeout=5).handled

    def test_pending_dispatches_queue_up_to_limit(self, registry, settings, make_handler, call_log):
        gate = threading.Event()
        registry.register(make_handler(OrderCreatedEvent, "blocking", gate=gate))
        roomy = settings.model_copy(update={"dispatcher_max_workers": 1, "dispatcher_max_pending": 2})

        with EventDispatcher(registry, roomy) as dispatcher:
            futures = [dispatcher.dispatch_async(OrderCreatedEvent()) for _ in range(3)]
            with pytest.raises(DispatchRejectedError):
                dispatcher.dispatch_async(OrderCreatedEvent())
            gate.set()
            for future in futures:
                future.result(timeout=5)

        assert call_log == ["blocking"] * 3

    def test_dispatch_and_wait_returns_result(self, dispatcher, registry, make_handler):
        registry.register(make_handler(OrderCreatedEvent, "quick"))

        result = dispatcher.dispatch_and_wait(OrderCreatedEvent(), timeout=timedelta(seconds=5))

        assert result is not None
        assert result.successful_handlers == ["quick"]

    def test_dispatch_and_wait_reports_handler_failures_in_result(self, dispatcher, registry, make_handler):
        registry.register(make_handler(OrderCreatedEvent, "broken", fail=True))

        result = dispatcher.dispatch_and_wait(OrderCreatedEvent(), timeout=5)

        assert result is not None
        assert result.failed_handlers == ["broken"]

    def test_dispatch_and_wait_timeout_returns_none(self, dispatcher, registry, make_handler, log_records):
        gate = threading.Event()
        registry.register(make_handler(OrderCreatedEvent, "blocking", gate=gate))

        started = time.monotonic()
        result = dispatcher.dispatch_and_wait(OrderCreatedEvent(), timeout=0.05)
        elapsed = time.monotonic() - started
        gate.set()

        assert result is None
        assert elapsed < 2
        assert any(level == "ERROR" and "Timed out" in message for level, message in log_records)

    def test_dispatch_and_wait_rejected_returns_none(self, registry, settings, make_handler, log_records):
        gate = threading.Event()
        registry.register(make_handler(OrderCreatedEvent, "blocking", gate=gate))
        tight = settings.model_copy(update={"dispatcher_max_workers": 1, "dispatcher_max_pending": 0})

        with EventDispatcher(registry, tight) as dispatcher:
            dispatcher.dispatch_async(OrderCreatedEvent())
            assert dispatcher.dispatch_and_wait(OrderCreatedEvent(), timeout=1) is None
            gate.set()

        assert any(level == "ERROR" and "Failed to schedule event handlers" in message for level, message in log_records)

    def test_shutdown_waits_for_in_flight(self, registry, settings, make_handler, call_log):
        gate = threading.Event()
        registry.register(make_handler(OrderCreatedEvent, "blocking", gate=gate))
        dispatcher = EventDispatcher(registry, settings)
        future = dispatcher.dispatch_async(OrderCreatedEvent())
        threading.Timer(0.05, gate.set).start()

        assert dispatcher.shutdown() is True
        assert future.done()
        assert call_log == ["blocking"]

    def test_shutdown_grace_period_elapses(self, registry, settings, make_handler):
        gate = threading.Event()
        registry.register(make_handler(OrderCreatedEvent, "blocking", gate=gate))
        dispatcher = EventDispatcher(registry, settings)
        dispatcher.dispatch_async(OrderCreatedEvent())

        try:
            assert dispatcher.shutdown(grace_period=0.05) is False
        finally:
            gate.set()

    def test_rejects_work_after_shutdown(self, registry, settings):
        dispatcher = EventDispatcher(registry, settings)
        dispatcher.shutdown()

        assert dispatcher.is_shutdown
        with pytest.raises(DispatcherShutdownError):
            dispatcher.dispatch_async(OrderCreatedEvent())
        assert dispatcher.dispatch_and_wait(OrderCreatedEvent(), timeout=1) is None

    def test_sync_dispatch_still_works_after_shutdown(self, registry, settings, make_handler, call_log):
        registry.register(make_handler(OrderCreatedEvent, "sync"))
        dispatcher = EventDispatcher(registry, settings)
        dispatcher.shutdown()

        dispatcher.dispatch(OrderCreatedEvent())

        assert call_log == ["sync"]

    def test_shutdown_is_idempotent(self, registry, settings):
        dispatcher = EventDispatcher(registry, settings)

        assert dispatcher.shutdown() is True
        assert dispatcher.shutdown() is True
