"""Wire codec for events.

Events travel as camelCase JSON with the ``eventType`` discriminator embedded.
Decoding resolves the concrete variant from the discriminator table in
``events.base``; nothing else in the subsystem inspects the tag.
"""

import json
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from commerce_events.exceptions import EventDecodeError

from .base import BaseEvent, get_event_class

DISCRIMINATOR_PROPERTY = "eventType"


class SerializedEvent(BaseModel):
    """An encoded event together with the identity fields channels key on."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    event_type: str
    body: str

    @property
    def body_bytes(self) -> bytes:
        return self.body.encode("utf-8")


class EventCodec:
    """Encode events to JSON and decode them back into their variant."""

    def encode(self, event: BaseEvent) -> str:
        return event.model_dump_json(by_alias=True)

    def serialize(self, event: BaseEvent) -> SerializedEvent:
        """Encode an event and wrap it with its identity fields."""
        return SerializedEvent(event_id=event.event_id, event_type=event.event_type, body=self.encode(event))

    def decode(self, payload: bytes | str | Mapping[str, Any]) -> BaseEvent:
        """Decode a wire payload into the matching event variant.

        Args:
            payload: Raw JSON bytes/text, or an already parsed mapping

        Returns:
            The reconstructed event

        Raises:
            UnknownEventTypeError: If the discriminator is missing or unknown
            EventDecodeError: If the payload is not valid JSON or fails validation
        """
        data = self._load(payload)

        event_class = get_event_class(data.get(DISCRIMINATOR_PROPERTY))
        try:
            return event_class.model_validate(data)
        except ValidationError as e:
            raise EventDecodeError(f"Invalid {event_class.EVENT_TYPE} payload: {e}") from e

    def _load(self, payload: bytes | str | Mapping[str, Any]) -> Mapping[str, Any]:
        if isinstance(payload, Mapping):
            return payload

        try:
            text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
            data = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise EventDecodeError(f"Event payload is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise EventDecodeError(f"Event payload must be a JSON object, got {type(data).__name__}")
        return data
