"""
Tool-calling agent.

Each step sends the conversation, the tool results so far and the new
question to the LLM. The model either names a tool to run (its observation
is added to the scratchpad for the next step) or gives the final answer.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from .conversation import Conversation
from .llm import LLMService, TokenUsage, combine_token_usage
from .prompt import ChatPrompt
from .tools import LlmTool

logger = logging.getLogger(__name__)

FINAL_ANSWER = "final_answer"

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class AgentError(Exception):
    """Raised when the agent cannot produce an answer."""


@dataclass
class AgentAction:
    action: str
    input: Any


@dataclass
class AgentReply:
    """Final answer and the tokens spent getting there."""

    text: str
    token_usage: TokenUsage


def parse_reply(text: str) -> AgentAction | None:
    """
    Parse a model reply of the form {"action": ..., "input": ...}.

    Returns None when the reply is not such an object.
    """
    candidate = text.strip()
    fenced = _CODE_FENCE.match(candidate)
    if fenced:
        candidate = fenced.group(1)
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("action"), str):
        return None
    return AgentAction(action=data["action"], input=data.get("input"))


class ChatAgent:
    """Answers a customer message, calling tools as the model asks."""

    def __init__(
        self,
        llm: LLMService,
        tools: list[LlmTool] | None = None,
        max_steps: int = 4,
        memory_turns: int = 6,
    ):
        self.llm = llm
        self.tools = {tool.tool_name: tool for tool in tools or []}
        self.max_steps = max_steps
        self.memory_turns = memory_turns

    async def run_tool(self, action: AgentAction) -> str:
        tool = self.tools.get(action.action)
        if tool is None:
            return f"There is no tool named {action.action}.\n"
        tool_input = action.input if isinstance(action.input, dict) else {}
        try:
            return await tool.run_for_llm(tool_input)
        except Exception as e:
            logger.exception(f"Tool {action.action} failed")
            return f"Tool {action.action} failed: {e}\n"

    async def respond(self, conversation: Conversation, text: str) -> AgentReply:
        """
        Answer one customer message and record both turns.

        The customer turn is recorded before the first LLM call, so a failed
        answer still shows up in the conversation transcript.

        Raises:
            AgentError: If no final answer is reached within max_steps.
        """
        history = conversation.recent(self.memory_turns)
        conversation.add_customer(text)

        scratchpad: list[str] = []
        usages: list[TokenUsage] = []

        for step in range(self.max_steps):
            prompt = ChatPrompt(text, list(self.tools.values()), history, scratchpad)
            result = await self.llm.get_model_response(prompt)
            usages.append(result.token_usage)

            action = parse_reply(result.response)
            if action is None:
                answer = result.response.strip()
                break
            if action.action == FINAL_ANSWER:
                answer = str(action.input or "").strip()
                break

            logger.debug(f"Step {step + 1}: running tool {action.action}")
            observation = await self.run_tool(action)
            scratchpad.append(
                f"{action.action}({json.dumps(action.input)}) -> {observation.strip()}"
            )
        else:
            raise AgentError(f"No final answer after {self.max_steps} steps")

        if not answer:
            raise AgentError("Model returned an empty answer")

        conversation.add_assistant(answer)
        return AgentReply(text=answer, token_usage=combine_token_usage(*usages))
