"""
Data models for the chat client: messages, conversation state and the
event vocabulary shared with the backend.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Sender(str, Enum):
    """Author of a message in the conversation log."""

    USER = "user"
    CHATBOT = "chatbot"


class ClientEvent(str, Enum):
    """Events emitted by the client."""

    MESSAGE = "message"
    CREATE_TICKET = "createTicket"
    MESSAGE_RATING = "messageRating"
    USER_FEEDBACK = "userFeedback"


class ServerEvent(str, Enum):
    """Events delivered to client handlers.

    CONNECT, DISCONNECT, CONNECT_ERROR and CONNECT_TIMEOUT are synthesized
    locally by the transport; the others arrive as frames.
    """

    CONNECT = "connect"
    MESSAGE = "message"
    UNEXPECTED_ERROR = "unexpected_error"
    DISCONNECT = "disconnect"
    CONNECT_ERROR = "connect_error"
    CONNECT_TIMEOUT = "connect_timeout"
    ACK = "ack"


class DisconnectReason(str, Enum):
    """Why the channel went down."""

    CLIENT_REQUESTED = "io client disconnect"
    NETWORK_LOST = "transport error"
    SERVER_CLOSED = "io server disconnect"
    TIMEOUT = "ping timeout"

    @property
    def is_reset(self) -> bool:
        """Only a disconnect the client asked for starts a fresh session."""
        return self is DisconnectReason.CLIENT_REQUESTED


class LifecycleState(str, Enum):
    """Session lifecycle states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERRORING = "erroring"
    RESETTING = "resetting"


@dataclass
class Message:
    """A single entry in the conversation log."""

    text: str
    sender: Sender
    id: str | None = None
    rating: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "text": self.text,
            "sender": self.sender.value,
        }
        if self.id is not None:
            result["id"] = self.id
        if self.rating is not None:
            result["rating"] = self.rating
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        """Create from dictionary."""
        message_id = data.get("id")
        return cls(
            text=data["text"],
            sender=Sender(data["sender"]),
            id=str(message_id) if message_id is not None else None,
            rating=data.get("rating"),
        )


@dataclass
class ConversationState:
    """Everything the UI needs to render a conversation."""

    messages: list[Message] = field(default_factory=list)
    is_typing: bool = False
    is_connected: bool = False
    attempted_connection: bool = False
    # Opaque transcript from the backend, only set by the error fallback
    conversation_history: str = ""


@dataclass
class SessionHandle:
    """Per-transport marker for the current logical session."""

    cur_session: bool = True
    generation: int = 0


@dataclass
class MessageRating:
    """A user's rating of one chatbot reply."""

    message_id: str
    rating: int

    def to_dict(self) -> dict[str, Any]:
        return {"messageId": self.message_id, "rating": self.rating}


@dataclass
class UserFeedback:
    """End-of-conversation feedback."""

    rating: int | None = None
    comment: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"userComment": self.comment}
        if self.rating is not None:
            result["userRating"] = self.rating
        return result
