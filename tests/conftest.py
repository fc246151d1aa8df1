"""Shared fixtures for the event subsystem tests."""

import threading
from collections.abc import Callable
from decimal import Decimal

import pytest
from loguru import logger

from commerce_events.channels import ChannelAdapter
from commerce_events.events import AddressInfo, BaseEvent, OrderCreatedEvent, OrderItemInfo, SerializedEvent
from commerce_events.handlers import EventHandler
from commerce_events.settings import Settings


class RecordingHandler(EventHandler[BaseEvent]):
    """Handler recording every event it receives into a shared call log."""

    def __init__(
        self,
        event_type: type[BaseEvent],
        label: str,
        call_log: list[str],
        priority: int = 100,
        fail: bool = False,
        predicate: Callable[[BaseEvent], bool] | None = None,
        gate: threading.Event | None = None,
    ):
        self.event_type = event_type
        self.priority = priority
        self.label = label
        self.call_log = call_log
        self.fail = fail
        self.predicate = predicate
        self.gate = gate
        self.received: list[BaseEvent] = []
        self.threads: list[str] = []

    @property
    def name(self) -> str:
        return self.label

    def can_handle(self, event: BaseEvent) -> bool:
        if self.predicate is not None:
            return self.predicate(event)
        return super().can_handle(event)

    def handle(self, event: BaseEvent) -> None:
        if self.gate is not None:
            self.gate.wait(timeout=10)
        self.threads.append(threading.current_thread().name)
        self.call_log.append(self.label)
        self.received.append(event)
        if self.fail:
            raise RuntimeError(f"{self.label} failed")


class RecordingChannel(ChannelAdapter):
    """Channel adapter recording sends, optionally failing every time."""

    def __init__(self, name: str, call_log: list[str], is_critical: bool = False, fail: bool = False):
        super().__init__(name, is_critical=is_critical)
        self.call_log = call_log
        self.fail = fail
        self.sent: list[tuple[SerializedEvent, str]] = []

    def send(self, serialized: SerializedEvent, routing_key: str) -> None:
        self.call_log.append(self.name)
        self.sent.append((serialized, routing_key))
        if self.fail:
            raise ConnectionError(f"{self.name} is down")


@pytest.fixture
def settings() -> Settings:
    """Settings with zero backoff so retry tests run instantly."""
    return Settings(
        _env_file=None,
        retry_base_delay_seconds=0.0,
        listener_initial_interval_seconds=0.0,
        listener_max_interval_seconds=0.0,
        shutdown_grace_period_seconds=5.0,
    )


@pytest.fixture
def call_log() -> list[str]:
    return []


@pytest.fixture
def make_handler(call_log: list[str]) -> Callable[..., RecordingHandler]:
    def factory(event_type: type[BaseEvent], label: str, priority: int = 100, **kwargs) -> RecordingHandler:
        return RecordingHandler(event_type, label, call_log, priority=priority, **kwargs)

    return factory


@pytest.fixture
def make_channel(call_log: list[str]) -> Callable[..., RecordingChannel]:
    def factory(name: str, is_critical: bool = False, fail: bool = False) -> RecordingChannel:
        return RecordingChannel(name, call_log, is_critical=is_critical, fail=fail)

    return factory


@pytest.fixture
def log_records():
    """Capture loguru records as ``(level, message)`` tuples."""
    records: list[tuple[str, str]] = []
    handler_id = logger.add(lambda message: records.append((message.record["level"].name, message.record["message"])), level="DEBUG")
    yield records
    logger.remove(handler_id)


@pytest.fixture
def order_event() -> OrderCreatedEvent:
    return OrderCreatedEvent.from_source(
        "order-service",
        "corr-1",
        "user-7",
        order_id="O-1",
        order_number="2024-0001",
        customer_id="C-9",
        customer_email="buyer@example.com",
        subtotal=Decimal("100.00"),
        tax_amount=Decimal("15.00"),
        shipping_amount=Decimal("5.00"),
        total_amount=Decimal("120.00"),
        currency="USD",
        shipping_address=AddressInfo(street="1 Main St", city="Springfield", zip_code="12345", country="US"),
        order_items=[
            OrderItemInfo(
                product_id="P-1",
                sku="SKU-1",
                product_name="Widget",
                unit_price=Decimal("50.00"),
                quantity=2,
                total_price=Decimal("100.00"),
                product_attributes={"color": "red"},
            )
        ],
    )
