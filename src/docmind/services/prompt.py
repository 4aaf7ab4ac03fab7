"""System instruction template and turn formatting."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal

from docmind.models import Message

CONTEXT_PLACEHOLDER = "{CONTEXT_WINDOW}"
KNOWLEDGE_MARKER = "[RELEVANT_KNOWLEDGE_CHUNKS]:"

SYSTEM_INSTRUCTION = f"""You are DocMind, an advanced Retrieval-Augmented Generation (RAG) platform.

OPERATING MODES:
1. GENERAL CONVERSATION: For greetings, help requests, or questions about your identity, respond politely and professionally. Encourage the user to upload or query documents if they haven't.
2. DATA ANALYSIS: When the user asks about indexed data, prioritize the {KNOWLEDGE_MARKER[:-1]} provided below.

CONSTRAINTS:
- CITATIONS: Use [File: Name] tags when referencing specific document data.
- ACCURACY: If information is clearly missing from the chunks provided, suggest what documents are available and ask for clarification.
- NO MARKDOWN: Use plain text only. Double line breaks for paragraphs.

{KNOWLEDGE_MARKER}
{CONTEXT_PLACEHOLDER}"""

TurnRole = Literal["user", "model"]


@dataclass(frozen=True)
class Turn:
    """One role-tagged turn in the provider's chat format."""

    role: TurnRole
    text: str

    def to_content(self) -> dict[str, object]:
        return {"role": self.role, "parts": [self.text]}


class PromptBuilder:
    """Places the retrieved context window into the system instruction."""

    def __init__(self, template: str = SYSTEM_INSTRUCTION, placeholder: str = CONTEXT_PLACEHOLDER) -> None:
        if placeholder not in template:
            raise ValueError(f"Template does not contain the placeholder {placeholder!r}")
        self._template = template
        self._placeholder = placeholder

    def build_instruction(self, context: str) -> str:
        # Only the first placeholder is substituted; context text is never re-expanded.
        return self._template.replace(self._placeholder, context, 1)

    @staticmethod
    def build_turns(history: Iterable[Message], query: str) -> list[Turn]:
        turns = [Turn(role="user" if message.role == "user" else "model", text=message.text) for message in history]
        turns.append(Turn(role="user", text=query))
        return turns
