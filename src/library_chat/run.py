"""
Terminal client for the Library Smart Chatbot.

Usage:
    python -m library_chat.run [OPTIONS]

    # Chat against a local backend
    python -m library_chat.run --url ws://127.0.0.1:8765/chat

    # Keep the log across restarts of the same "tab"
    python -m library_chat.run --storage-dir .chat --tab-id tab1

Commands inside the chat:
    /rate <message-id> <1-5>     rate a chatbot reply
    /ticket                      leave a question for a librarian
    /feedback <1-5> [comment]    finish the conversation
    /reconnect                   retry after losing the connection
    /quit                        exit
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import ClientConfig
from .models import ConversationState, UserFeedback
from .service import SessionService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("library-chat")


class InputClosed(Exception):
    """Raised when stdin reaches EOF."""


async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, lambda: input(prompt))
    except EOFError as exc:
        raise InputClosed("stdin closed") from exc


class TerminalView:
    """Prints new log entries and status changes."""

    def __init__(self):
        self._printed = 0
        self._connected: bool | None = None

    def __call__(self, state: ConversationState) -> None:
        if len(state.messages) < self._printed:
            print("--- new conversation ---")
            self._printed = 0
        for message in state.messages[self._printed :]:
            label = "you" if message.sender.value == "user" else "bot"
            suffix = f"  [{message.id}]" if message.id else ""
            print(f"{label} > {message.text.rstrip()}{suffix}")
        self._printed = len(state.messages)

        if state.is_connected != self._connected and state.attempted_connection:
            self._connected = state.is_connected
            print("(connected)" if state.is_connected else "(offline)")


async def prompt_ticket() -> dict[str, str]:
    """Collect the offline ticket form."""
    return {
        "name": (await ainput("name: ")).strip(),
        "email": (await ainput("email: ")).strip(),
        "question": (await ainput("question: ")).strip(),
        "details": (await ainput("details: ")).strip(),
    }


async def handle_command(service: SessionService, line: str) -> bool:
    """Run a slash command. Returns False when the user wants to quit."""
    parts = line.split(maxsplit=2)
    command = parts[0].lower()

    if command == "/quit":
        return False

    if command == "/reconnect":
        await service.reconnect()
    elif command == "/rate" and len(parts) == 3 and parts[2].isdigit():
        await service.rate_message(parts[1], int(parts[2]))
    elif command == "/ticket":
        if not await service.submit_ticket(await prompt_ticket()):
            print("(offline: ticket not sent)")
    elif command == "/feedback" and len(parts) >= 2 and parts[1].isdigit():
        comment = parts[2] if len(parts) == 3 else ""
        await service.submit_feedback(UserFeedback(rating=int(parts[1]), comment=comment))
    else:
        print(__doc__.split("Commands inside the chat:")[1].rstrip())
    return True


async def chat(config: ClientConfig) -> None:
    """Run an interactive conversation until /quit or EOF."""
    view = TerminalView()
    async with SessionService(config) as service:
        service.store.add_listener(view)
        view(service.state)
        while True:
            try:
                line = (await ainput("")).strip()
            except InputClosed:
                break
            if not line:
                continue
            if line.startswith("/"):
                if not await handle_command(service, line):
                    break
                continue
            if not await service.send_message(line):
                print("(offline: message not sent, try /reconnect)")


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="library-chat: terminal client for the Library Smart Chatbot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=Path("library-chat.yaml"),
        help="Path to config file (default: library-chat.yaml)",
    )
    parser.add_argument(
        "--url",
        type=str,
        help="Override the backend websocket URL from config",
    )
    parser.add_argument(
        "--tab-id",
        type=str,
        help="Storage slot to use; the same id restores the same conversation",
    )
    parser.add_argument(
        "--storage-dir",
        type=Path,
        help="Persist the conversation log under this directory",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = ClientConfig.from_yaml(args.config)
    if args.url:
        config.backend_url = args.url
    if args.tab_id:
        config.tab_id = args.tab_id
    if args.storage_dir:
        config.storage_dir = args.storage_dir

    logger.info(f"Backend: {config.backend_url}")

    try:
        asyncio.run(chat(config))
    except KeyboardInterrupt:
        logger.info("Client stopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
