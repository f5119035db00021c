"""
Websocket server wiring config, adapters and the per-connection dispatcher.
"""

import asyncio
import contextlib
import logging
from http import HTTPStatus

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.http11 import Request, Response

from .agent import ChatAgent
from .auth import SpringshareAuthorizer
from .catalog import CatalogSearchTool, EbscoClient
from .config import ServerConfig
from .dispatcher import ChatConnection
from .libcal import CancelReservationTool
from .llm import LLMService
from .tickets import TicketService

logger = logging.getLogger(__name__)


def build_agent(config: ServerConfig, authorizer: SpringshareAuthorizer) -> ChatAgent:
    """Agent with every library tool enabled."""
    tools = [
        CancelReservationTool(config.libcal, authorizer),
        CatalogSearchTool(EbscoClient(config.ebsco), config.ebsco.num_of_books),
    ]
    return ChatAgent(
        LLMService(config.llm),
        tools,
        max_steps=config.agent.max_steps,
        memory_turns=config.agent.memory_turns,
    )


class ChatServer:
    """Serves the chat channel at ws://host:port/path."""

    def __init__(
        self,
        config: ServerConfig | None = None,
        agent: ChatAgent | None = None,
        tickets: TicketService | None = None,
        authorizer: SpringshareAuthorizer | None = None,
    ):
        self.config = config or ServerConfig()
        self.authorizer = authorizer or SpringshareAuthorizer(self.config.springshare)
        self.agent = agent or build_agent(self.config, self.authorizer)
        self.tickets = tickets or TicketService(self.config.tickets, self.authorizer)
        self._server: Server | None = None
        self._refresh_task: asyncio.Task | None = None

    @property
    def port(self) -> int | None:
        """Bound port, useful when configured with port 0."""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    def _process_request(self, connection: ServerConnection, request: Request) -> Response | None:
        if request.path != self.config.path:
            return connection.respond(HTTPStatus.NOT_FOUND, "Not found\n")
        return None

    async def _handler(self, websocket: ServerConnection) -> None:
        await ChatConnection(websocket, self.agent, self.tickets).serve()

    async def start(self) -> None:
        """Start listening and, if credentials exist, refreshing tokens."""
        if self._server is not None:
            return
        self._server = await serve(
            self._handler,
            self.config.host,
            self.config.port,
            process_request=self._process_request,
        )
        if self.config.springshare.client_id:
            self._refresh_task = asyncio.create_task(self.authorizer.run_refresh_loop())
        else:
            logger.info("Springshare client_id not set, token refresh disabled")
        logger.info(f"Serving chat on ws://{self.config.host}:{self.port}{self.config.path}")

    async def stop(self) -> None:
        """Stop the refresher and close every connection. Safe to repeat."""
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._refresh_task
            self._refresh_task = None
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info("Chat server stopped")

    async def serve_forever(self) -> None:
        await self.start()
        try:
            await self._server.serve_forever()
        finally:
            await self.stop()

    async def __aenter__(self) -> "ChatServer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
