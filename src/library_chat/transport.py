"""
Transport Session: one live websocket channel per client instance.

The channel is pinned to a plain websocket (no long-polling fallback and no
upgrade negotiation). Reconnection and backoff are left to the websockets
client's own reconnect loop; this module only translates what happens on
the wire into events:

    connect           handshake succeeded
    disconnect        connection ended, with a DisconnectReason
    connect_error     a connection attempt failed
    connect_timeout   a connection attempt timed out
    <frame event>     any event frame sent by the backend

Handlers are plain callables run on the event loop in arrival order. A
handler that raises is logged; the exception never reaches the channel.
"""

import asyncio
import contextlib
import itertools
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from websockets.asyncio.client import ClientConnection, connect, process_exception
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from .config import TransportConfig
from .envelope import Envelope, EnvelopeError
from .models import (
    ClientEvent,
    DisconnectReason,
    MessageRating,
    ServerEvent,
    SessionHandle,
    UserFeedback,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]

# Events only the transport itself may raise
LOCAL_EVENTS = frozenset(
    {
        ServerEvent.CONNECT.value,
        ServerEvent.DISCONNECT.value,
        ServerEvent.CONNECT_ERROR.value,
        ServerEvent.CONNECT_TIMEOUT.value,
    }
)

KEEPALIVE_CLOSE_CODE = 1011


def _event_name(event: str | Enum) -> str:
    return event.value if isinstance(event, Enum) else str(event)


def classify_close(exc: ConnectionClosed | None) -> DisconnectReason:
    """Map an unrequested connection loss to a DisconnectReason."""
    if exc is None or not isinstance(exc, ConnectionClosedError):
        return DisconnectReason.SERVER_CLOSED
    sent = exc.sent
    if sent is not None and sent.code == KEEPALIVE_CLOSE_CODE and "keepalive" in sent.reason:
        return DisconnectReason.TIMEOUT
    return DisconnectReason.NETWORK_LOST


class TransportSession:
    """Owns the channel to the chat backend."""

    def __init__(
        self,
        url: str,
        config: TransportConfig | None = None,
        connector: Callable[..., Any] = connect,
    ):
        self.url = url
        self.config = config or TransportConfig()
        self.handle = SessionHandle()
        self._connector = connector
        self._handlers: dict[str, list[Handler]] = {}
        self._acks: dict[int, Handler] = {}
        self._ack_ids = itertools.count(1)
        self._task: asyncio.Task | None = None
        self._connection: ClientConnection | None = None
        self._closing = False

    @property
    def connected(self) -> bool:
        """True while a handshaken connection is open."""
        return self._connection is not None

    @property
    def active(self) -> bool:
        """True while the channel task is connecting or connected."""
        return self._task is not None and not self._task.done()

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def on(self, event: str | Enum, handler: Handler) -> None:
        """Register a handler; registering the same handler twice is a no-op."""
        handlers = self._handlers.setdefault(_event_name(event), [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event: str | Enum) -> None:
        """Detach every handler for an event."""
        self._handlers.pop(_event_name(event), None)

    def _dispatch(self, event: str | Enum, data: Any = None) -> None:
        name = _event_name(event)
        for handler in list(self._handlers.get(name, ())):
            self._invoke(handler, data, name)

    def _invoke(self, handler: Handler, data: Any, name: str) -> None:
        try:
            handler(data)
        except Exception:
            logger.exception(f"Handler for {name!r} failed")

    # -------------------------------------------------------------------------
    # Channel lifecycle
    # -------------------------------------------------------------------------

    def connect(self) -> None:
        """Open the channel unless one is already running for this instance."""
        if self.active:
            return
        self._closing = False
        logger.debug(f"Opening channel to {self.url}")
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"chat-transport-{self.handle.generation}"
        )

    async def disconnect(self) -> None:
        """
        Close the channel at the client's request.

        An open connection is closed, a channel that is still connecting is
        cancelled, and either way a disconnect event with CLIENT_REQUESTED
        is dispatched.
        """
        task = self._task
        if task is None or task.done():
            return

        if self._connection is not None:
            self._closing = True
            await self._connection.close()
            if task is not asyncio.current_task():
                await task
            return

        task.cancel()
        if task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._task is task:
            self._task = None
        logger.debug(f"Cancelled pending connection to {self.url}")
        self._dispatch(ServerEvent.DISCONNECT, DisconnectReason.CLIENT_REQUESTED)

    async def close(self) -> None:
        """Teardown: detach listeners, drop pending acks, close the channel."""
        self._handlers.clear()
        self._acks.clear()
        await self.disconnect()

    async def _run(self) -> None:
        connections = self._connector(
            self.url,
            process_exception=self._on_connect_failure,
            **self.config.to_connect_kwargs(),
        )
        websocket = None
        try:
            async with contextlib.aclosing(aiter(connections)) as stream:
                async for websocket in stream:
                    self._connection = websocket
                    logger.info(f"Connected to {self.url}")
                    self._dispatch(ServerEvent.CONNECT)

                    reason = await self._read(websocket)
                    self._connection = None
                    self._closing = False
                    if self._acks:
                        logger.debug(f"Dropping {len(self._acks)} unanswered ack(s)")
                        self._acks.clear()
                    logger.info(f"Disconnected from {self.url}: {reason.value}")

                    if reason.is_reset:
                        # Let a handler reopen the channel from inside dispatch
                        self._task = None
                        self._dispatch(ServerEvent.DISCONNECT, reason)
                        return
                    self._dispatch(ServerEvent.DISCONNECT, reason)
        except Exception as e:
            # process_exception judged the failure fatal; already reported
            logger.error(f"Channel to {self.url} gave up: {e}")
        finally:
            # A reset may already have started the next channel
            if websocket is not None and self._connection is websocket:
                self._connection = None

    async def _read(self, websocket: ClientConnection) -> DisconnectReason:
        try:
            async for raw in websocket:
                self._handle_frame(raw)
        except ConnectionClosedError as e:
            if self._closing:
                return DisconnectReason.CLIENT_REQUESTED
            return classify_close(e)
        if self._closing:
            return DisconnectReason.CLIENT_REQUESTED
        return DisconnectReason.SERVER_CLOSED

    def _on_connect_failure(self, exc: Exception) -> Exception | None:
        """Report a failed attempt, then defer the retry decision to websockets."""
        if isinstance(exc, TimeoutError):
            logger.warning(f"Connection to {self.url} timed out")
            self._dispatch(ServerEvent.CONNECT_TIMEOUT, exc)
        else:
            logger.warning(f"Connection to {self.url} failed: {exc}")
            self._dispatch(ServerEvent.CONNECT_ERROR, exc)
        return process_exception(exc)

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            envelope = Envelope.from_json(raw)
        except EnvelopeError as e:
            logger.warning(f"Dropping malformed frame: {e}")
            return

        if envelope.is_ack:
            callback = self._acks.pop(envelope.ack, None) if envelope.ack is not None else None
            if callback is None:
                logger.debug(f"Ignoring ack {envelope.ack} with no pending callback")
                return
            self._invoke(callback, envelope.data, "ack")
            return

        if envelope.event in LOCAL_EVENTS:
            logger.warning(f"Ignoring reserved event {envelope.event!r} from backend")
            return

        self._dispatch(envelope.event, envelope.data)

    # -------------------------------------------------------------------------
    # Outbound events
    # -------------------------------------------------------------------------

    async def emit(self, event: str | Enum, data: Any = None, callback: Handler | None = None) -> bool:
        """
        Send one event frame.

        Returns False, without sending, when there is no open connection or
        the write fails. With a callback the backend is asked to ack and the
        callback receives the ack payload.
        """
        websocket = self._connection
        name = _event_name(event)
        if websocket is None:
            logger.debug(f"Not connected, dropping {name!r}")
            return False

        ack_id = None
        if callback is not None:
            ack_id = next(self._ack_ids)
            self._acks[ack_id] = callback

        try:
            await websocket.send(Envelope(event=name, data=data, ack=ack_id).to_json())
        except ConnectionClosed:
            logger.warning(f"Connection closed while sending {name!r}")
            if ack_id is not None:
                self._acks.pop(ack_id, None)
            return False
        return True

    async def send_message(self, text: str) -> bool:
        """Send the user's raw text; replies arrive as message events."""
        return await self.emit(ClientEvent.MESSAGE, text)

    async def submit_ticket(self, form_data: dict[str, Any], callback: Handler | None = None) -> bool:
        return await self.emit(ClientEvent.CREATE_TICKET, form_data, callback)

    async def submit_rating(self, rating: MessageRating) -> bool:
        return await self.emit(ClientEvent.MESSAGE_RATING, rating.to_dict())

    async def submit_feedback(self, feedback: UserFeedback) -> bool:
        """Send feedback, the last action of a conversation, then disconnect."""
        sent = await self.emit(ClientEvent.USER_FEEDBACK, feedback.to_dict())
        if sent:
            await self.disconnect()
        return sent
