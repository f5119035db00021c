"""End-to-end chat flow: SessionService against a running ChatServer."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from library_chat.config import ClientConfig, TransportConfig
from library_chat.lifecycle import FALLBACK_MESSAGE, WELCOME_MESSAGE
from library_chat.models import Sender, ServerEvent, UserFeedback
from library_chat.service import SessionService
from library_chat.transport import TransportSession
from library_chat_server.agent import AgentError, AgentReply, ChatAgent
from library_chat_server.config import ServerConfig
from library_chat_server.llm import TokenUsage
from library_chat_server.server import ChatServer
from library_chat_server.tickets import TicketService


async def wait_for(predicate, timeout=5.0):
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


@pytest.fixture
def agent():
    agent = AsyncMock(spec=ChatAgent)

    async def respond(conversation, text):
        conversation.add_customer(text)
        if text == "break":
            raise AgentError("No final answer after 4 steps")
        conversation.add_assistant(f"You said: {text}")
        return AgentReply(f"You said: {text}", TokenUsage(1, 1, 2))

    agent.respond.side_effect = respond
    return agent


@pytest.fixture
def tickets():
    tickets = AsyncMock(spec=TicketService)
    tickets.submit.return_value = "Your ticket has been submitted. A librarian will contact you."
    return tickets


@pytest.fixture
async def chat_server(agent, tickets):
    config = ServerConfig(host="127.0.0.1", port=0)
    async with ChatServer(config, agent=agent, tickets=tickets) as server:
        yield server


@pytest.fixture
async def service(chat_server):
    config = ClientConfig(
        backend_url=f"ws://127.0.0.1:{chat_server.port}/chat",
        transport=TransportConfig(open_timeout=2),
    )
    async with SessionService(config) as service:
        await wait_for(lambda: service.state.is_connected)
        yield service


class TestChatFlow:
    """Test the full conversation lifecycle."""

    async def test_welcome_on_connect(self, service):
        assert [m.text for m in service.state.messages] == [WELCOME_MESSAGE]

    async def test_question_and_answer(self, service):
        assert await service.send_message("Where are the printers?")
        await wait_for(lambda: len(service.state.messages) == 3)

        reply = service.state.messages[-1]
        assert reply.sender is Sender.CHATBOT
        assert reply.text == "You said: Where are the printers?"
        assert reply.id
        assert not service.state.is_typing

    async def test_rating_reaches_backend(self, service, caplog):
        await service.send_message("hi")
        await wait_for(lambda: len(service.state.messages) == 3)
        message_id = service.state.messages[-1].id

        with caplog.at_level("INFO", logger="library_chat_server.audit"):
            assert await service.rate_message(message_id, 5)
            await wait_for(lambda: any("rating" in r.getMessage() for r in caplog.records))

        assert service.state.messages[-1].rating == 5

    async def test_unexpected_error_fallback(self, service):
        await service.send_message("break")
        await wait_for(lambda: service.state.conversation_history)

        assert service.state.messages[-1].text == FALLBACK_MESSAGE
        assert service.state.conversation_history == "Customer: break"
        assert not service.state.is_connected

    async def test_ticket_ack(self, service, tickets):
        responses = []
        form = {"name": "A", "email": "a@example.edu", "question": "Q"}

        assert await service.transport.submit_ticket(form, responses.append)
        await wait_for(lambda: responses)

        tickets.submit.assert_awaited_once_with(form)
        assert responses[0].startswith("Your ticket has been submitted")

    async def test_feedback_starts_new_session(self, service):
        await service.send_message("hi")
        await wait_for(lambda: len(service.state.messages) == 3)

        assert await service.submit_feedback(UserFeedback(rating=5, comment="thanks"))
        await wait_for(
            lambda: service.transport.handle.generation == 1 and service.state.is_connected
        )

        assert [m.text for m in service.state.messages] == [WELCOME_MESSAGE]

    async def test_double_disconnect_reopens_channel(self, service):
        """Ending the chat twice in a row still leaves one fresh session."""
        await service.send_message("hi")
        await wait_for(lambda: len(service.state.messages) == 3)

        await service.transport.disconnect()
        await service.transport.disconnect()
        await wait_for(
            lambda: service.transport.handle.generation == 2 and service.state.is_connected
        )
        await asyncio.sleep(0.05)

        assert service.transport.connected
        assert service.transport.handle.cur_session is False
        assert [m.text for m in service.state.messages] == [WELCOME_MESSAGE]


class TestServerRouting:
    """Test the server's request path handling."""

    async def test_wrong_path_rejected(self, chat_server):
        session = TransportSession(f"ws://127.0.0.1:{chat_server.port}/other")
        errors = []
        session.on(ServerEvent.CONNECT_ERROR, errors.append)

        session.connect()
        await wait_for(lambda: errors)
        await wait_for(lambda: not session.active)

        assert not session.connected
        await session.close()

    async def test_stop_is_idempotent(self, agent, tickets):
        server = ChatServer(ServerConfig(port=0), agent=agent, tickets=tickets)
        await server.start()
        assert server.port
        await server.stop()
        await server.stop()
        assert server.port is None
