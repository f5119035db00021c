"""
Configuration for the chat client.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class TransportConfig:
    """Websocket client settings."""

    open_timeout: float = 10.0  # handshake timeout, reported as connect_timeout
    ping_interval: float | None = 20.0
    ping_timeout: float | None = 20.0
    close_timeout: float = 5.0
    max_size: int = 1_048_576

    def to_connect_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for websockets' connect()."""
        return {
            "open_timeout": self.open_timeout,
            "ping_interval": self.ping_interval,
            "ping_timeout": self.ping_timeout,
            "close_timeout": self.close_timeout,
            "max_size": self.max_size,
        }


@dataclass
class ClientConfig:
    """Complete chat client configuration."""

    backend_url: str = "ws://127.0.0.1:8765/chat"
    tab_id: str = "default"
    storage_dir: Path | None = None  # None keeps the log in memory only
    transport: TransportConfig = field(default_factory=TransportConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClientConfig":
        """Create config from a dictionary (e.g., from YAML)."""
        config = cls()

        if "backend_url" in data:
            config.backend_url = data["backend_url"]
        if "tab_id" in data:
            config.tab_id = str(data["tab_id"])
        if data.get("storage_dir"):
            config.storage_dir = Path(data["storage_dir"])

        if "transport" in data:
            transport = data["transport"]
            config.transport = TransportConfig(
                open_timeout=transport.get("open_timeout", 10.0),
                ping_interval=transport.get("ping_interval", 20.0),
                ping_timeout=transport.get("ping_timeout", 20.0),
                close_timeout=transport.get("close_timeout", 5.0),
                max_size=transport.get("max_size", 1_048_576),
            )

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "ClientConfig":
        """Load config from the client section of a YAML file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data.get("client", {}) or {})

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for JSON serialization."""
        return {
            "backend_url": self.backend_url,
            "tab_id": self.tab_id,
            "storage_dir": str(self.storage_dir) if self.storage_dir else None,
            "transport": {
                "open_timeout": self.transport.open_timeout,
                "ping_interval": self.transport.ping_interval,
                "ping_timeout": self.transport.ping_timeout,
                "close_timeout": self.transport.close_timeout,
                "max_size": self.transport.max_size,
            },
        }
