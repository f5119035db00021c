"""
Per-connection event dispatcher.

Frames of one connection are handled one at a time, in arrival order, so
replies leave in the order their requests came in.
"""

import logging
import secrets
from typing import Any

from websockets.asyncio.server import ServerConnection
from websockets.exceptions import ConnectionClosed

from library_chat.envelope import Envelope, EnvelopeError
from library_chat.models import ClientEvent, ServerEvent

from .agent import ChatAgent
from .conversation import Conversation
from .tickets import TicketService

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("library_chat_server.audit")

TICKET_FAILURE_MESSAGE = "Your ticket could not be submitted. Please try again later."


def new_message_id() -> str:
    return secrets.token_hex(8)


class ChatConnection:
    """Serves one client channel until it closes."""

    def __init__(self, websocket: ServerConnection, agent: ChatAgent, tickets: TicketService):
        self.websocket = websocket
        self.agent = agent
        self.tickets = tickets
        self.conversation = Conversation()

    @property
    def remote(self) -> str:
        address = getattr(self.websocket, "remote_address", None)
        if isinstance(address, tuple) and len(address) >= 2:
            return f"{address[0]}:{address[1]}"
        return str(address)

    async def send(self, envelope: Envelope) -> None:
        await self.websocket.send(envelope.to_json())

    async def serve(self) -> None:
        """Read frames until the client goes away."""
        logger.info(f"Client connected from {self.remote}")
        try:
            async for raw in self.websocket:
                try:
                    envelope = Envelope.from_json(raw)
                except EnvelopeError as e:
                    logger.warning(f"Dropping malformed frame from {self.remote}: {e}")
                    continue
                await self.handle(envelope)
        except ConnectionClosed as e:
            logger.debug(f"Connection from {self.remote} closed: {e}")
        logger.info(f"Client {self.remote} disconnected")

    async def handle(self, envelope: Envelope) -> None:
        event = envelope.event
        if event == ClientEvent.MESSAGE.value:
            await self.on_message(envelope.data)
        elif event == ClientEvent.CREATE_TICKET.value:
            await self.on_create_ticket(envelope.data, envelope.ack)
        elif event == ClientEvent.MESSAGE_RATING.value:
            self.on_message_rating(envelope.data)
        elif event == ClientEvent.USER_FEEDBACK.value:
            self.on_user_feedback(envelope.data)
        else:
            logger.warning(f"Ignoring unknown event {event!r} from {self.remote}")

    async def on_message(self, data: Any) -> None:
        if not isinstance(data, str) or not data.strip():
            logger.warning(f"Ignoring empty message from {self.remote}")
            return

        try:
            reply = await self.agent.respond(self.conversation, data.strip())
        except Exception:
            logger.exception(f"Could not answer message from {self.remote}")
            await self.send(
                Envelope(
                    event=ServerEvent.UNEXPECTED_ERROR.value,
                    data=self.conversation.to_transcript(),
                )
            )
            return

        logger.info(f"Answered {self.remote} using {reply.token_usage.total_tokens} tokens")
        await self.send(
            Envelope(
                event=ServerEvent.MESSAGE.value,
                data={"messageId": new_message_id(), "message": reply.text},
            )
        )

    async def on_create_ticket(self, data: Any, ack: int | None) -> None:
        try:
            result = await self.tickets.submit(data)
        except Exception:
            logger.exception(f"Ticket submission from {self.remote} failed")
            result = TICKET_FAILURE_MESSAGE
        if ack is not None:
            await self.send(Envelope.ack_reply(ack, result))

    def on_message_rating(self, data: Any) -> None:
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed rating from {self.remote}")
            return
        audit_logger.info(
            f"rating message_id={data.get('messageId')} rating={data.get('rating')}"
        )

    def on_user_feedback(self, data: Any) -> None:
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed feedback from {self.remote}")
            return
        audit_logger.info(
            f"feedback rating={data.get('userRating')} comment={data.get('userComment', '')!r}"
        )
