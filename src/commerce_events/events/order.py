"""Order events."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import Field

from .base import BaseEvent, EventPayload, register_event


class AddressInfo(EventPayload):
    """Shipping or billing address attached to an order."""

    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None
    phone: str | None = None


class OrderItemInfo(EventPayload):
    """A single order line."""

    product_id: str | None = None
    sku: str | None = None
    product_name: str | None = None
    unit_price: Decimal | None = None
    quantity: int | None = None
    total_price: Decimal | None = None
    product_attributes: dict[str, Any] = Field(default_factory=dict)


@register_event
class OrderCreatedEvent(BaseEvent):
    """Fired when a new order is created.

    Monetary amounts are ``Decimal`` and travel as strings so no precision is
    lost on the wire.
    """

    EVENT_TYPE = "ORDER_CREATED"

    order_id: str | None = None
    order_number: str | None = None
    customer_id: str | None = None
    customer_email: str | None = None
    order_status: str | None = None
    order_date: datetime | None = None
    expected_delivery_date: datetime | None = None
    subtotal: Decimal | None = None
    tax_amount: Decimal | None = None
    shipping_amount: Decimal | None = None
    discount_amount: Decimal | None = None
    total_amount: Decimal | None = None
    currency: str | None = None
    payment_method: str | None = None
    payment_status: str | None = None
    shipping_address: AddressInfo | None = None
    billing_address: AddressInfo | None = None
    order_items: list[OrderItemInfo] = Field(default_factory=list)
    order_notes: str | None = None
    shipping_method: str | None = None
    tracking_number: str | None = None
