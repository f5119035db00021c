"""
Server-side conversation memory for one connection.
"""

from dataclasses import dataclass, field

CUSTOMER = "Customer"
ASSISTANT = "AI"


@dataclass
class Turn:
    role: str
    text: str


@dataclass
class Conversation:
    """Ordered turns of one chat, used for prompts and escalation."""

    turns: list[Turn] = field(default_factory=list)

    def add_customer(self, text: str) -> None:
        self.turns.append(Turn(CUSTOMER, text))

    def add_assistant(self, text: str) -> None:
        self.turns.append(Turn(ASSISTANT, text))

    def recent(self, limit: int) -> list[Turn]:
        if limit <= 0:
            return []
        return self.turns[-limit:]

    def to_transcript(self, turns: list[Turn] | None = None) -> str:
        """Plain-text transcript, one "Role: text" line per turn."""
        selected = self.turns if turns is None else turns
        return "\n".join(f"{t.role}: {t.text}" for t in selected)
