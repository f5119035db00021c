"""Shared pytest fixtures for library-chat tests."""

from enum import Enum
from typing import Any
from unittest.mock import MagicMock

import pytest

from library_chat.models import DisconnectReason, ServerEvent, SessionHandle
from library_chat.storage import MemoryStorage
from library_chat.store import ConversationStore


class FakeTransport:
    """In-process stand-in for TransportSession.

    Records every emit and lets a test raise inbound events by hand.
    """

    def __init__(self, connected: bool = True):
        self.handle = SessionHandle()
        self.connected = connected
        self.handlers: dict[str, list] = {}
        self.emitted: list[tuple[str, Any]] = []
        self.callbacks: list = []
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.closed = False
        self.fail_sends = False

    @staticmethod
    def _name(event):
        return event.value if isinstance(event, Enum) else str(event)

    def on(self, event, handler):
        handlers = self.handlers.setdefault(self._name(event), [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event):
        self.handlers.pop(self._name(event), None)

    def fire(self, event, data=None):
        """Deliver an event to registered handlers."""
        for handler in list(self.handlers.get(self._name(event), ())):
            handler(data)

    def connect(self):
        self.connect_calls += 1

    async def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False
        if not self.closed:
            self.fire(ServerEvent.DISCONNECT, DisconnectReason.CLIENT_REQUESTED)

    async def close(self):
        self.handlers.clear()
        self.closed = True
        await self.disconnect()

    async def emit(self, event, data=None, callback=None):
        if not self.connected or self.fail_sends:
            return False
        self.emitted.append((self._name(event), data))
        if callback is not None:
            self.callbacks.append(callback)
        return True

    async def send_message(self, text):
        return await self.emit("message", text)

    async def submit_ticket(self, form_data, callback=None):
        return await self.emit("createTicket", form_data, callback)

    async def submit_rating(self, rating):
        return await self.emit("messageRating", rating.to_dict())

    async def submit_feedback(self, feedback):
        sent = await self.emit("userFeedback", feedback.to_dict())
        if sent:
            await self.disconnect()
        return sent


@pytest.fixture
def storage():
    """Fresh in-memory storage slot."""
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return ConversationStore(storage)


@pytest.fixture
def transport():
    """A connected fake transport."""
    return FakeTransport()


@pytest.fixture
def offline_transport():
    """A fake transport with no live connection."""
    return FakeTransport(connected=False)


@pytest.fixture
def mock_response():
    """Factory for mock httpx responses."""

    def _make_response(json_data, status_code=200):
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = json_data
        response.raise_for_status = MagicMock()
        if status_code >= 400:
            from httpx import HTTPStatusError

            response.raise_for_status.side_effect = HTTPStatusError(
                "Error", request=MagicMock(), response=response
            )
        return response

    return _make_response
