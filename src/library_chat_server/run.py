"""
CLI runner for the chat backend.

Usage:
    python -m library_chat_server.run [OPTIONS]

    # Serve with settings from library-chat.yaml
    python -m library_chat_server.run

    # Serve on all interfaces
    python -m library_chat_server.run --host 0.0.0.0 --port 8765
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .config import ServerConfig
from .server import ChatServer

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("library-chat-server")


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="library-chat-server: backend for the Library Smart Chatbot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=Path("library-chat.yaml"),
        help="Path to config file (default: library-chat.yaml)",
    )
    parser.add_argument("--host", type=str, help="Override the listen address")
    parser.add_argument("--port", type=int, help="Override the listen port")
    parser.add_argument(
        "--show-config",
        action="store_true",
        help="Print the effective configuration and exit",
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

    config = ServerConfig.from_yaml(args.config)
    if args.host:
        config.host = args.host
    if args.port is not None:
        config.port = args.port

    if args.show_config:
        print(json.dumps(config.to_dict(), indent=2))
        return 0

    logger.info(f"LLM: {config.llm.provider}/{config.llm.model}")

    try:
        asyncio.run(ChatServer(config).serve_forever())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
