"""
Configuration for the chat backend.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


def _from_env(value: str | None, env_name: str | None) -> str | None:
    """Prefer a literal value, fall back to the named environment variable."""
    if value:
        return value
    if env_name:
        return os.environ.get(env_name)
    return None


@dataclass
class LLMConfig:
    """LLM provider configuration."""

    provider: str = "openai"  # openai, ollama
    model: str = "gpt-4"
    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = None
    api_key_env: str | None = "OPENAI_API_KEY"
    temperature: float = 0.0
    top_p: float = 0.1
    timeout_seconds: float = 60.0

    def get_api_key(self) -> str | None:
        """Get API key from config or environment."""
        return _from_env(self.api_key, self.api_key_env)


@dataclass
class AgentConfig:
    """Tool-calling loop limits."""

    max_steps: int = 4
    memory_turns: int = 6  # conversation turns included in each prompt


@dataclass
class EbscoConfig:
    """EBSCO Discovery Service (catalog search) configuration."""

    auth_url: str = "https://eds-api.ebscohost.com/authservice/rest/uidauth"
    api_url: str = "https://eds-api.ebscohost.com/edsapi/rest"
    profile: str = "edsapi"
    user_id: str | None = None
    user_id_env: str | None = "EBSCO_USER_ID"
    password: str | None = None
    password_env: str | None = "EBSCO_PASSWORD"
    num_of_books: int = 3
    timeout_seconds: float = 30.0

    def get_user_id(self) -> str | None:
        return _from_env(self.user_id, self.user_id_env)

    def get_password(self) -> str | None:
        return _from_env(self.password, self.password_env)


@dataclass
class SpringshareConfig:
    """OAuth client credentials shared by LibCal and LibAnswers."""

    token_url: str = "https://libcal.example.edu/1.1/oauth/token"
    client_id: str = ""
    client_secret: str | None = None
    client_secret_env: str | None = "SPRINGSHARE_CLIENT_SECRET"
    refresh_interval_seconds: float = 3000.0

    def get_client_secret(self) -> str | None:
        return _from_env(self.client_secret, self.client_secret_env)


@dataclass
class LibcalConfig:
    """LibCal room booking configuration."""

    cancel_url: str = "https://libcal.example.edu/1.1/space/cancel"
    timeout_seconds: float = 30.0


@dataclass
class TicketConfig:
    """LibAnswers ticket configuration."""

    create_url: str = "https://libanswers.example.edu/api/1.1/ticket/create"
    queue_id: str = ""
    timeout_seconds: float = 30.0


@dataclass
class ServerConfig:
    """Complete chat backend configuration."""

    host: str = "127.0.0.1"
    port: int = 8765
    path: str = "/chat"

    llm: LLMConfig = field(default_factory=LLMConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    ebsco: EbscoConfig = field(default_factory=EbscoConfig)
    springshare: SpringshareConfig = field(default_factory=SpringshareConfig)
    libcal: LibcalConfig = field(default_factory=LibcalConfig)
    tickets: TicketConfig = field(default_factory=TicketConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ServerConfig":
        """Create config from a dictionary (e.g., from YAML)."""
        config = cls()

        if "host" in data:
            config.host = data["host"]
        if "port" in data:
            config.port = int(data["port"])
        if "path" in data:
            config.path = data["path"]

        if "llm" in data:
            llm = data["llm"]
            config.llm = LLMConfig(
                provider=llm.get("provider", "openai"),
                model=llm.get("model", "gpt-4"),
                base_url=llm.get("base_url", "https://api.openai.com/v1"),
                api_key=llm.get("api_key"),
                api_key_env=llm.get("api_key_env", "OPENAI_API_KEY"),
                temperature=llm.get("temperature", 0.0),
                top_p=llm.get("top_p", 0.1),
                timeout_seconds=llm.get("timeout_seconds", 60.0),
            )

        if "agent" in data:
            agent = data["agent"]
            config.agent = AgentConfig(
                max_steps=agent.get("max_steps", 4),
                memory_turns=agent.get("memory_turns", 6),
            )

        if "ebsco" in data:
            ebsco = data["ebsco"]
            config.ebsco = EbscoConfig(
                auth_url=ebsco.get("auth_url", config.ebsco.auth_url),
                api_url=ebsco.get("api_url", config.ebsco.api_url),
                profile=ebsco.get("profile", config.ebsco.profile),
                user_id=ebsco.get("user_id"),
                user_id_env=ebsco.get("user_id_env", "EBSCO_USER_ID"),
                password=ebsco.get("password"),
                password_env=ebsco.get("password_env", "EBSCO_PASSWORD"),
                num_of_books=ebsco.get("num_of_books", 3),
                timeout_seconds=ebsco.get("timeout_seconds", 30.0),
            )

        if "springshare" in data:
            ss = data["springshare"]
            config.springshare = SpringshareConfig(
                token_url=ss.get("token_url", config.springshare.token_url),
                client_id=str(ss.get("client_id", "")),
                client_secret=ss.get("client_secret"),
                client_secret_env=ss.get("client_secret_env", "SPRINGSHARE_CLIENT_SECRET"),
                refresh_interval_seconds=ss.get("refresh_interval_seconds", 3000.0),
            )

        if "libcal" in data:
            libcal = data["libcal"]
            config.libcal = LibcalConfig(
                cancel_url=libcal.get("cancel_url", config.libcal.cancel_url),
                timeout_seconds=libcal.get("timeout_seconds", 30.0),
            )

        if "tickets" in data:
            tickets = data["tickets"]
            config.tickets = TicketConfig(
                create_url=tickets.get("create_url", config.tickets.create_url),
                queue_id=str(tickets.get("queue_id", "")),
                timeout_seconds=tickets.get("timeout_seconds", 30.0),
            )

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "ServerConfig":
        """Load config from the server section of a YAML file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data.get("server", {}) or {})

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for JSON serialization (no secrets)."""
        return {
            "host": self.host,
            "port": self.port,
            "path": self.path,
            "llm": {
                "provider": self.llm.provider,
                "model": self.llm.model,
                "base_url": self.llm.base_url,
                "temperature": self.llm.temperature,
                "top_p": self.llm.top_p,
            },
            "agent": {
                "max_steps": self.agent.max_steps,
                "memory_turns": self.agent.memory_turns,
            },
            "ebsco": {
                "api_url": self.ebsco.api_url,
                "profile": self.ebsco.profile,
                "num_of_books": self.ebsco.num_of_books,
            },
            "libcal": {"cancel_url": self.libcal.cancel_url},
            "tickets": {"create_url": self.tickets.create_url},
        }
