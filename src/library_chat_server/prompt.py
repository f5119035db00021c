"""
Prompts for the library assistant.

A prompt has two parts: the system description (who the assistant is, which
tools exist, how to reply) and the user turn (recent conversation, tool
results so far, and the new question).
"""

import json
from abc import ABC, abstractmethod

from .conversation import Turn
from .tools import LlmTool

ASSISTANT_ROLE = (
    "You are the Library Smart Chatbot, a customer-support assistant for a "
    "university library. Answer questions about the library, its services "
    "and its collection. Be concise and friendly. If you do not know an "
    "answer, say so and suggest contacting a librarian."
)

REPLY_FORMAT = (
    "Reply with a single JSON object and nothing else.\n"
    'To use a tool: {"action": "<tool name>", "input": {<parameters>}}\n'
    'To answer the customer: {"action": "final_answer", "input": "<answer>"}'
)


class Prompt(ABC):
    """Base class for prompts sent to the LLM."""

    @abstractmethod
    def get_system_description(self) -> str:
        """Text for the system message."""

    @abstractmethod
    def get_prompt(self) -> str:
        """Text for the user message."""


class ChatPrompt(Prompt):
    """Prompt for one step of the tool-calling loop."""

    def __init__(
        self,
        user_message: str,
        tools: list[LlmTool] | None = None,
        history: list[Turn] | None = None,
        scratchpad: list[str] | None = None,
    ):
        self.user_message = user_message
        self.tools = tools or []
        self.history = history or []
        self.scratchpad = scratchpad or []

    def describe_tools(self) -> str:
        if not self.tools:
            return "No tools are available."
        lines = ["Available tools:"]
        for tool in self.tools:
            params = json.dumps(tool.tool_parameters_structure)
            lines.append(f"- {tool.tool_name}: {tool.tool_description} Parameters: {params}")
        return "\n".join(lines)

    def get_system_description(self) -> str:
        return f"{ASSISTANT_ROLE}\n\n{self.describe_tools()}\n\n{REPLY_FORMAT}"

    def get_prompt(self) -> str:
        sections = []
        if self.history:
            transcript = "\n".join(f"{t.role}: {t.text}" for t in self.history)
            sections.append(f"Conversation so far:\n{transcript}")
        if self.scratchpad:
            sections.append("Tool results so far:\n" + "\n".join(self.scratchpad))
        sections.append(f"Customer: {self.user_message}")
        return "\n\n".join(sections)
