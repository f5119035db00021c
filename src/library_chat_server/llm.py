"""
LLM adapter: send a prompt to a hosted chat-completion model and return the
reply text with its token usage.

Both supported providers speak the OpenAI-compatible /chat/completions API
(OpenAI itself, and Ollama's /v1 endpoint).
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .config import LLMConfig
from .prompt import Prompt

logger = logging.getLogger(__name__)

OPENAI_COMPATIBLE_PROVIDERS = ("openai", "ollama")


class UnknownModelError(ValueError):
    """Raised when the configured provider is not supported."""


class LLMResponseError(Exception):
    """Raised when the provider returns no usable reply."""


@dataclass
class TokenUsage:
    """Token counts reported by the provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TokenUsage":
        data = data or {}
        prompt = int(data.get("prompt_tokens", 0) or 0)
        completion = int(data.get("completion_tokens", 0) or 0)
        return cls(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=int(data.get("total_tokens", prompt + completion) or 0),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


def combine_token_usage(*usages: TokenUsage) -> TokenUsage:
    """Sum several usage records."""
    return TokenUsage(
        prompt_tokens=sum(u.prompt_tokens for u in usages),
        completion_tokens=sum(u.completion_tokens for u in usages),
        total_tokens=sum(u.total_tokens for u in usages),
    )


@dataclass
class LLMResponse:
    """Reply text and what it cost."""

    response: str
    token_usage: TokenUsage


class ChatCompletionClient:
    """Client for an OpenAI-compatible chat completion endpoint."""

    def __init__(self, base_url: str, api_key: str | None, timeout_seconds: float = 60.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout_seconds

    async def get_model_response(
        self,
        prompt: str,
        system_description: str,
        model: str,
        temperature: float = 0.0,
        top_p: float = 0.1,
    ) -> LLMResponse:
        """
        Send one system + user exchange.

        Raises:
            LLMResponseError: If the reply has no message content.
            httpx.HTTPError: On transport or HTTP status failures.
        """
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        body = {
            "model": model,
            "temperature": temperature,
            "top_p": top_p,
            "messages": [
                {"role": "system", "content": system_description},
                {"role": "user", "content": prompt},
            ],
        }

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                headers=headers,
                json=body,
            )
            response.raise_for_status()
            data = response.json()

        choices = data.get("choices") or []
        content = None
        if choices:
            content = (choices[0].get("message") or {}).get("content")
        if not content:
            raise LLMResponseError("No response from model")

        return LLMResponse(response=content, token_usage=TokenUsage.from_dict(data.get("usage")))


class LLMService:
    """Picks the model client from config and runs prompts through it."""

    def __init__(self, config: LLMConfig, client: ChatCompletionClient | None = None):
        self.config = config
        self._client = client

    def get_model(self) -> ChatCompletionClient:
        """
        Get the client for the configured provider.

        Raises:
            UnknownModelError: If the provider is not supported.
        """
        if self._client is not None:
            return self._client
        if self.config.provider not in OPENAI_COMPATIBLE_PROVIDERS:
            error_msg = f"No model provider {self.config.provider}"
            logger.error(error_msg)
            raise UnknownModelError(error_msg)
        self._client = ChatCompletionClient(
            base_url=self.config.base_url,
            api_key=self.config.get_api_key(),
            timeout_seconds=self.config.timeout_seconds,
        )
        return self._client

    async def get_model_response(self, prompt: Prompt) -> LLMResponse:
        """Render the prompt and return the model's reply."""
        model = self.get_model()
        try:
            result = await model.get_model_response(
                prompt.get_prompt(),
                prompt.get_system_description(),
                model=self.config.model,
                temperature=self.config.temperature,
                top_p=self.config.top_p,
            )
        except Exception:
            logger.exception(f"LLM request to {self.config.provider}/{self.config.model} failed")
            raise
        logger.debug(f"LLM usage: {result.token_usage.to_dict()}")
        return result
