"""
Session Lifecycle Controller.

Turns transport events into store mutations:

    Disconnected -> Connecting -> Connected -> Disconnected | Erroring | Resetting

The distinction that matters is between a disconnect the client asked for
(start a fresh logical session) and a lost connection (keep the
conversation so it resumes on reconnect).
"""

import json
import logging
from typing import Any

from .models import DisconnectReason, LifecycleState, Sender, ServerEvent
from .store import ConversationStore
from .transport import TransportSession

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = "Hi this is the Library Smart Chatbot. How may I help you?"
FALLBACK_MESSAGE = (
    "Some unexpected errors happened. Please click the button at the bottom "
    "to continue your conversation with the real librarian.\n"
)


def history_text(history: Any) -> str:
    """The backend transcript as stored; non-string payloads are kept as JSON."""
    if history is None:
        return ""
    if isinstance(history, str):
        return history
    return json.dumps(history)


class SessionLifecycleController:
    """Drives the conversation state from channel events."""

    def __init__(
        self,
        store: ConversationStore,
        transport: TransportSession,
        welcome_message: str = WELCOME_MESSAGE,
        fallback_message: str = FALLBACK_MESSAGE,
    ):
        self.store = store
        self.transport = transport
        self.welcome_message = welcome_message
        self.fallback_message = fallback_message
        self.state = LifecycleState.DISCONNECTED
        self._attached = False

    def attach(self) -> None:
        """Register each handler exactly once."""
        if self._attached:
            return
        self.transport.on(ServerEvent.CONNECT, self.on_connect)
        self.transport.on(ServerEvent.MESSAGE, self.on_message)
        self.transport.on(ServerEvent.UNEXPECTED_ERROR, self.on_unexpected_error)
        self.transport.on(ServerEvent.DISCONNECT, self.on_disconnect)
        self.transport.on(ServerEvent.CONNECT_ERROR, self.on_connect_error)
        self.transport.on(ServerEvent.CONNECT_TIMEOUT, self.on_connect_timeout)
        self._attached = True

    def detach(self) -> None:
        for event in (
            ServerEvent.CONNECT,
            ServerEvent.MESSAGE,
            ServerEvent.UNEXPECTED_ERROR,
            ServerEvent.DISCONNECT,
            ServerEvent.CONNECT_ERROR,
            ServerEvent.CONNECT_TIMEOUT,
        ):
            self.transport.off(event)
        self._attached = False

    def open(self) -> None:
        """Ask the transport for a channel."""
        if self.state is not LifecycleState.CONNECTED:
            self.state = LifecycleState.CONNECTING
        self.transport.connect()

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def on_connect(self, _data: Any = None) -> None:
        handle = self.transport.handle
        if handle.cur_session:
            self.store.append(self.welcome_message, Sender.CHATBOT)
            handle.cur_session = False
            logger.debug(f"Welcome injected for session generation {handle.generation}")
        self.state = LifecycleState.CONNECTED
        self.store.set_connection(True, attempted=True)
        self.store.set_typing(False)

    def on_message(self, payload: Any) -> None:
        self.store.set_typing(False)
        if isinstance(payload, dict) and isinstance(payload.get("message"), str):
            message_id = payload.get("messageId")
            self.store.append(
                payload["message"],
                Sender.CHATBOT,
                str(message_id) if message_id is not None else None,
            )
        elif isinstance(payload, str):
            self.store.append(payload, Sender.CHATBOT)
        else:
            logger.warning(f"Ignoring message event with unexpected payload: {payload!r}")

    def on_unexpected_error(self, history: Any) -> None:
        logger.warning("Backend reported an unexpected error; offering escalation")
        self.state = LifecycleState.ERRORING
        self.store.set_typing(False)
        self.store.append(self.fallback_message, Sender.CHATBOT)
        self.store.snapshot_history(history_text(history))
        # The channel stays open so the escalation flow can still use it
        self.store.set_connection(False, attempted=self.store.state.attempted_connection)

    def on_disconnect(self, reason: DisconnectReason) -> None:
        if reason.is_reset:
            self.reset()
            return
        self.state = LifecycleState.DISCONNECTED
        self.store.set_typing(False)
        self.store.set_connection(False, attempted=True)

    def on_connect_error(self, error: Any) -> None:
        logger.debug(f"Connect error: {error}")
        self.on_disconnect(DisconnectReason.NETWORK_LOST)

    def on_connect_timeout(self, error: Any) -> None:
        logger.debug(f"Connect timeout: {error}")
        self.on_disconnect(DisconnectReason.TIMEOUT)

    def reset(self) -> None:
        """Start a fresh logical session on the same transport."""
        self.state = LifecycleState.RESETTING
        self.store.reset_all()
        self.store.set_connection(False, attempted=True)
        handle = self.transport.handle
        handle.cur_session = True
        handle.generation += 1
        logger.info(f"Conversation reset, starting session generation {handle.generation}")
        self.open()
