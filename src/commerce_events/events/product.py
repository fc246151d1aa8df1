"""Product catalogue events."""

from decimal import Decimal
from typing import Any

from pydantic import Field

from .base import BaseEvent, register_event


@register_event
class ProductCreatedEvent(BaseEvent):
    """Fired when a new product is created."""

    EVENT_TYPE = "PRODUCT_CREATED"

    product_id: str | None = None
    sku: str | None = None
    name: str | None = None
    description: str | None = None
    category_id: str | None = None
    brand: str | None = None
    price: Decimal | None = None
    currency: str | None = None
    available_stock: int | None = None
    minimum_stock: int | None = None
    maximum_stock: int | None = None
    weight: Decimal | None = None
    weight_unit: str | None = None
    dimensions: str | None = None
    tags: list[str] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)
    active: bool | None = None
    created_by: str | None = None
