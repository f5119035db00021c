"""
Tool interface for the LLM agent.

A tool is an adapter the model can ask to run, e.g. cancelling a room
reservation. Tools report problems (missing parameters, failed API calls)
as text the model can relay to the customer.
"""

from abc import ABC, abstractmethod
from typing import Any

MISSING_VALUES = (None, "", "null", "undefined", "None")


def is_missing(value: Any) -> bool:
    """True for the ways a model spells "no value"."""
    return value in MISSING_VALUES


class LlmTool(ABC):
    """Base class for tools."""

    tool_name: str = "base"
    tool_description: str = ""
    tool_parameters_structure: dict[str, str] = {}

    @abstractmethod
    async def run_for_llm(self, tool_input: dict[str, Any]) -> str:
        """Run the tool and describe the outcome in plain text."""
