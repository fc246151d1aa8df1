"""User lifecycle events."""

from datetime import datetime
from typing import Any

from pydantic import Field

from .base import BaseEvent, register_event


@register_event
class UserRegisteredEvent(BaseEvent):
    """Fired when a new user is registered.

    The registered user's identifier travels in the shared ``user_id`` field.
    """

    EVENT_TYPE = "USER_REGISTERED"

    username: str | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone_number: str | None = None
    roles: list[str] = Field(default_factory=list)
    registration_source: str | None = None
    email_verification_required: bool | None = None
    phone_verification_required: bool | None = None


@register_event
class UserUpdatedEvent(BaseEvent):
    """Fired when user information is updated."""

    EVENT_TYPE = "USER_UPDATED"

    updated_fields: dict[str, Any] = Field(default_factory=dict)
    previous_values: dict[str, Any] = Field(default_factory=dict)
    update_reason: str | None = None
    updated_by: str | None = None
    update_timestamp: datetime | None = None


@register_event
class UserDeletedEvent(BaseEvent):
    """Fired when a user is deleted."""

    EVENT_TYPE = "USER_DELETED"

    username: str | None = None
    email: str | None = None
    deletion_reason: str | None = None
    soft_delete: bool | None = None
    deleted_by: str | None = None
    deletion_timestamp: datetime | None = None


@register_event
class UserActivatedEvent(BaseEvent):
    """Fired when a user account is activated."""

    EVENT_TYPE = "USER_ACTIVATED"

    username: str | None = None
    email: str | None = None
    activation_reason: str | None = None
    activated_by: str | None = None
    new_user_activation: bool | None = None
    email_verified: bool | None = None
    phone_verified: bool | None = None


@register_event
class UserDeactivatedEvent(BaseEvent):
    """Fired when a user account is deactivated, possibly temporarily."""

    EVENT_TYPE = "USER_DEACTIVATED"

    username: str | None = None
    email: str | None = None
    deactivation_reason: str | None = None
    deactivated_by: str | None = None
    deactivation_timestamp: datetime | None = None
    temporary: bool | None = None
    reactivation_date: datetime | None = None
