"""
Conversation State Store.

Holds the ordered message log, the typing indicator, the connection flags
and the escalation history snapshot. Every mutation that touches the log
writes the whole log to the storage slot before returning, so a reload of
the same tab restores it verbatim.
"""

import json
import logging
from collections.abc import Callable

from .models import ConversationState, Message, Sender
from .storage import SessionStorage

logger = logging.getLogger(__name__)

STORAGE_KEY = "chat_messages"

StateListener = Callable[[ConversationState], None]


class ConversationStore:
    """Single-writer store for one client's conversation."""

    def __init__(self, storage: SessionStorage, key: str = STORAGE_KEY):
        self.storage = storage
        self.key = key
        self.state = ConversationState(messages=self._restore())
        self._listeners: list[StateListener] = []

    @property
    def messages(self) -> list[Message]:
        return self.state.messages

    def _restore(self) -> list[Message]:
        """Load the persisted log, if any."""
        raw = self.storage.get_item(self.key)
        if not raw:
            return []
        try:
            return [Message.from_dict(item) for item in json.loads(raw)]
        except (ValueError, KeyError, TypeError):
            logger.warning(f"Discarding unreadable conversation log in slot {self.key!r}")
            return []

    def _persist(self) -> None:
        self.storage.set_item(
            self.key,
            json.dumps([m.to_dict() for m in self.state.messages]),
        )

    def add_listener(self, listener: StateListener) -> None:
        """Call listener with the state after every mutation."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.state)
            except Exception:
                logger.exception("State listener failed")

    def append(self, text: str, sender: Sender, message_id: str | None = None) -> Message:
        """Append a message to the log and persist it."""
        message = Message(text=text, sender=sender, id=message_id)
        self.state.messages.append(message)
        self._persist()
        self._notify()
        return message

    def rate(self, message_id: str, rating: float) -> Message | None:
        """Record a rating on the message with the given id."""
        for message in self.state.messages:
            if message.id == message_id:
                message.rating = rating
                self._persist()
                self._notify()
                return message
        logger.warning(f"Cannot rate unknown message {message_id}")
        return None

    def set_typing(self, is_typing: bool) -> None:
        self.state.is_typing = is_typing
        self._notify()

    def set_connection(self, connected: bool, attempted: bool = True) -> None:
        self.state.is_connected = connected
        self.state.attempted_connection = attempted
        self._notify()

    def snapshot_history(self, history: str) -> None:
        """Keep the backend's transcript for escalation to a librarian."""
        self.state.conversation_history = history
        self._notify()

    def reset_all(self) -> None:
        """
        Clear the log, typing indicator and history snapshot.

        Connection flags are left alone; they describe the channel, not the
        conversation.
        """
        self.state.messages = []
        self.state.is_typing = False
        self.state.conversation_history = ""
        self.storage.remove_item(self.key)
        self._notify()
