"""
Wire envelope for the chat channel.

Every frame is a JSON text frame:

    {"event": "message", "data": "Where is the library?"}
    {"event": "createTicket", "data": {...}, "ack": 3}
    {"event": "ack", "ack": 3, "data": "Ticket created"}

The optional "ack" id asks the receiver to reply with an "ack" frame
carrying the same id.
"""

import json
from dataclasses import dataclass
from typing import Any

ACK_EVENT = "ack"


class EnvelopeError(ValueError):
    """Raised when a frame cannot be decoded into an envelope."""


@dataclass
class Envelope:
    """A single event frame."""

    event: str
    data: Any = None
    ack: int | None = None

    @property
    def is_ack(self) -> bool:
        return self.event == ACK_EVENT

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"event": self.event}
        if self.data is not None:
            result["data"] = self.data
        if self.ack is not None:
            result["ack"] = self.ack
        return result

    def to_json(self) -> str:
        """Serialize to a JSON text frame."""
        return json.dumps(self.to_dict(), indent=None)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Envelope":
        """
        Decode a text frame.

        Raises:
            EnvelopeError: If the frame is not a JSON object with a string
                "event" and an integer (or absent) "ack".
        """
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise EnvelopeError(f"Frame is not valid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise EnvelopeError("Frame must be a JSON object")

        event = payload.get("event")
        if not isinstance(event, str) or not event:
            raise EnvelopeError("Frame is missing a string 'event'")

        ack = payload.get("ack")
        if ack is not None and (isinstance(ack, bool) or not isinstance(ack, int)):
            raise EnvelopeError("Frame 'ack' must be an integer")

        return cls(event=event, data=payload.get("data"), ack=ack)

    @classmethod
    def ack_reply(cls, ack: int, data: Any = None) -> "Envelope":
        """Build the reply frame for an ack request."""
        return cls(event=ACK_EVENT, data=data, ack=ack)
