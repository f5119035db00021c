"""Tests for the per-connection dispatcher."""

import json
import logging
from unittest.mock import AsyncMock

import pytest

from library_chat_server.agent import AgentError, AgentReply, ChatAgent
from library_chat_server.dispatcher import TICKET_FAILURE_MESSAGE, ChatConnection
from library_chat_server.llm import TokenUsage
from library_chat_server.tickets import TicketService


class FakeWebSocket:
    """Feeds canned frames and records what the dispatcher sends."""

    remote_address = ("127.0.0.1", 50000)

    def __init__(self, frames):
        self.frames = frames
        self.sent = []

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            yield frame

    async def send(self, data):
        self.sent.append(json.loads(data))


def frame(event, data=None, ack=None):
    payload = {"event": event, "data": data}
    if ack is not None:
        payload["ack"] = ack
    return json.dumps(payload)


@pytest.fixture
def agent():
    agent = AsyncMock(spec=ChatAgent)

    async def respond(conversation, text):
        conversation.add_customer(text)
        conversation.add_assistant(f"answer to {text}")
        return AgentReply(f"answer to {text}", TokenUsage(1, 1, 2))

    agent.respond.side_effect = respond
    return agent


@pytest.fixture
def tickets():
    tickets = AsyncMock(spec=TicketService)
    tickets.submit.return_value = "Your ticket has been submitted. A librarian will contact you."
    return tickets


class TestChatConnection:
    """Test frame handling."""

    async def test_replies_in_request_order(self, agent, tickets):
        ws = FakeWebSocket([frame("message", "first"), frame("message", "second")])
        await ChatConnection(ws, agent, tickets).serve()

        assert [m["event"] for m in ws.sent] == ["message", "message"]
        assert [m["data"]["message"] for m in ws.sent] == ["answer to first", "answer to second"]
        ids = [m["data"]["messageId"] for m in ws.sent]
        assert len(set(ids)) == 2
        assert all(len(i) == 16 for i in ids)

    async def test_agent_failure_sends_transcript(self, agent, tickets):
        async def failing(conversation, text):
            conversation.add_customer(text)
            raise AgentError("No final answer after 4 steps")

        agent.respond.side_effect = failing
        ws = FakeWebSocket([frame("message", "help me")])
        await ChatConnection(ws, agent, tickets).serve()

        assert ws.sent == [{"event": "unexpected_error", "data": "Customer: help me"}]

    async def test_create_ticket_acks(self, agent, tickets):
        form = {"name": "A", "email": "a@example.edu", "question": "Q"}
        ws = FakeWebSocket([frame("createTicket", form, ack=7)])
        await ChatConnection(ws, agent, tickets).serve()

        tickets.submit.assert_awaited_once_with(form)
        assert ws.sent == [
            {
                "event": "ack",
                "ack": 7,
                "data": "Your ticket has been submitted. A librarian will contact you.",
            }
        ]

    async def test_create_ticket_without_ack(self, agent, tickets):
        ws = FakeWebSocket([frame("createTicket", {"name": "A"})])
        await ChatConnection(ws, agent, tickets).serve()
        tickets.submit.assert_awaited_once()
        assert ws.sent == []

    async def test_ticket_failure_acks_and_keeps_serving(self, agent, tickets):
        """A crash inside ticket submission becomes a failure ack."""
        tickets.submit.side_effect = RuntimeError("boom")
        ws = FakeWebSocket([frame("createTicket", {"name": "A"}, ack=3), frame("message", "still there?")])
        await ChatConnection(ws, agent, tickets).serve()

        assert ws.sent[0] == {"event": "ack", "ack": 3, "data": TICKET_FAILURE_MESSAGE}
        assert ws.sent[1]["data"]["message"] == "answer to still there?"

    async def test_rating_and_feedback_audited(self, agent, tickets, caplog):
        ws = FakeWebSocket(
            [
                frame("messageRating", {"messageId": "m1", "rating": 5}),
                frame("userFeedback", {"userRating": 4, "userComment": "great"}),
            ]
        )
        with caplog.at_level(logging.INFO, logger="library_chat_server.audit"):
            await ChatConnection(ws, agent, tickets).serve()

        audit = [r.getMessage() for r in caplog.records if r.name == "library_chat_server.audit"]
        assert audit == [
            "rating message_id=m1 rating=5",
            "feedback rating=4 comment='great'",
        ]
        assert ws.sent == []

    async def test_skips_malformed_and_unknown_frames(self, agent, tickets):
        ws = FakeWebSocket(["not json", frame("teleport", {}), frame("message", "hi")])
        await ChatConnection(ws, agent, tickets).serve()
        assert len(ws.sent) == 1
        assert ws.sent[0]["data"]["message"] == "answer to hi"

    async def test_ignores_empty_message(self, agent, tickets):
        ws = FakeWebSocket([frame("message", "   "), frame("message", {"text": "x"})])
        await ChatConnection(ws, agent, tickets).serve()
        agent.respond.assert_not_awaited()
        assert ws.sent == []

    async def test_conversation_accumulates(self, agent, tickets):
        ws = FakeWebSocket([frame("message", "one"), frame("message", "two")])
        connection = ChatConnection(ws, agent, tickets)
        await connection.serve()
        assert len(connection.conversation.turns) == 4
