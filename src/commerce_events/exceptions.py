"""Exceptions raised by the event subsystem.

Failures local to one channel or one handler are reported as values
(``ChannelSendFailure``, ``HandlerOutcome``) and logged. The classes below are
raised only for whole-operation failures and for programming errors such as
registering an event type twice.
"""

from datetime import datetime

import arrow


class EventsError(Exception):
    """Base exception for all event subsystem errors.

    Attributes:
        error_code: Stable machine-readable code
        service_code: Optional code of the service that raised the error
        timestamp: UTC time the error was created
    """

    default_error_code = "EVENTS_ERROR"

    def __init__(self, message: str, error_code: str | None = None, service_code: str | None = None):
        super().__init__(message)
        self.error_code = error_code or self.default_error_code
        self.service_code = service_code
        self.timestamp: datetime = arrow.utcnow().datetime


class EventRegistrationError(EventsError):
    """Raised when an event variant cannot be added to the discriminator table."""

    default_error_code = "EVENT_REGISTRATION_ERROR"


class EventDecodeError(EventsError):
    """Raised when a wire payload cannot be turned back into an event."""

    default_error_code = "EVENT_DECODE_ERROR"


class UnknownEventTypeError(EventDecodeError):
    """Raised when a payload carries a discriminator no variant is registered for."""

    default_error_code = "UNKNOWN_EVENT_TYPE"

    def __init__(self, event_type: object):
        self.event_type = event_type
        super().__init__(f"Unknown event type: {event_type!r}")


class PublishError(EventsError):
    """Raised when publishing an event fails as a whole.

    Carries the diagnostic context of the failed call: event type, routing key,
    the serialized payload (when encoding got that far) and the per-channel
    failures. The underlying cause is chained as ``__cause__``.
    """

    default_error_code = "EVENT_PUBLISH_ERROR"

    def __init__(
        self,
        message: str,
        event_type: str | None = None,
        routing_key: str | None = None,
        payload: str | None = None,
        failures: list | None = None,
    ):
        super().__init__(message)
        self.event_type = event_type
        self.routing_key = routing_key
        self.payload = payload
        self.failures = list(failures or [])


class HandlerRegistrationError(EventsError):
    """Raised when a handler does not satisfy the handler contract."""

    default_error_code = "HANDLER_REGISTRATION_ERROR"


class DispatchRejectedError(EventsError):
    """Raised when the async dispatch pool is saturated."""

    default_error_code = "DISPATCH_REJECTED"


class DispatcherShutdownError(EventsError):
    """Raised when work is submitted to a dispatcher that was shut down."""

    default_error_code = "DISPATCHER_SHUTDOWN"


class HandlerFailuresError(EventsError):
    """Raised by the listener when handler failures count as delivery failures."""

    default_error_code = "HANDLER_FAILURES"

    def __init__(self, event_type: str, failed_handlers: list[str]):
        self.event_type = event_type
        self.failed_handlers = failed_handlers
        super().__init__(f"{len(failed_handlers)} handler(s) failed for {event_type}: {', '.join(failed_handlers)}")
