"""
SessionService: the one object a UI needs.

Built once per client instance. Owns the conversation store, the transport
and the lifecycle controller, and exposes the user actions.

Usage:
    async with SessionService(ClientConfig()) as service:
        service.store.add_listener(render)
        await service.send_message("Where is the library?")
"""

import logging
from typing import Any

from .config import ClientConfig
from .lifecycle import SessionLifecycleController
from .models import ConversationState, MessageRating, Sender, UserFeedback
from .storage import FileStorage, MemoryStorage, SessionStorage
from .store import ConversationStore
from .transport import TransportSession

logger = logging.getLogger(__name__)


def build_storage(config: ClientConfig) -> SessionStorage:
    """Pick the storage backend from config."""
    if config.storage_dir is not None:
        return FileStorage(config.storage_dir, config.tab_id)
    return MemoryStorage()


class SessionService:
    """Client-side chat session."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        storage: SessionStorage | None = None,
        transport: TransportSession | None = None,
    ):
        self.config = config or ClientConfig()
        self.store = ConversationStore(storage or build_storage(self.config))
        self.transport = transport or TransportSession(
            self.config.backend_url, self.config.transport
        )
        self.controller = SessionLifecycleController(self.store, self.transport)
        self._closed = False

    @property
    def state(self) -> ConversationState:
        return self.store.state

    async def __aenter__(self) -> "SessionService":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def start(self) -> None:
        """Register lifecycle handlers and open the channel."""
        self._closed = False
        self.controller.attach()
        self.controller.open()

    async def reconnect(self) -> None:
        """Retry affordance after a connection failure."""
        if self._closed:
            return
        self.controller.open()

    async def send_message(self, text: str) -> bool:
        """
        Send a user message.

        Without a live channel this is a no-op: nothing is emitted and the
        log is untouched.
        """
        if not self.transport.connected:
            logger.info("Not connected; message not sent")
            return False
        self.store.append(text, Sender.USER)
        self.store.set_typing(True)
        sent = await self.transport.send_message(text)
        if not sent:
            # Channel dropped between the check and the write
            self.store.set_typing(False)
        return sent

    async def submit_ticket(self, form_data: dict[str, Any]) -> bool:
        """Send an offline ticket; the backend's reply is only logged."""

        def log_response(response: Any) -> None:
            logger.info(f"Ticket response: {response}")

        return await self.transport.submit_ticket(form_data, log_response)

    async def rate_message(self, message_id: str, rating: int) -> bool:
        """Record a rating locally and report it to the backend."""
        self.store.rate(message_id, rating)
        return await self.transport.submit_rating(MessageRating(message_id=message_id, rating=rating))

    async def submit_feedback(self, feedback: UserFeedback) -> bool:
        """Send feedback; this ends the conversation and resets the session."""
        return await self.transport.submit_feedback(feedback)

    async def close(self) -> None:
        """Teardown. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.controller.detach()
        await self.transport.close()
