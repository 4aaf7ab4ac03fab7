from __future__ import annotations

from typing import AsyncIterator, Sequence

import pytest

from docmind.documents import DocumentStore
from docmind.services.prompt import Turn


class ScriptedGenerator:
    """Generation backend that replays fixed fragments and records each call."""

    def __init__(self, fragments: Sequence[str] = ("Hello", " ", "world"), error: Exception | None = None) -> None:
        self.fragments = list(fragments)
        self.error = error
        self.calls: list[dict] = []
        self.closed = False
        self.emitted = 0

    async def stream(self, *, system_instruction: str, turns: Sequence[Turn], temperature: float) -> AsyncIterator[str]:
        self.calls.append({"system_instruction": system_instruction, "turns": list(turns), "temperature": temperature})
        try:
            for fragment in self.fragments:
                self.emitted += 1
                yield fragment
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


@pytest.fixture
def store() -> DocumentStore:
    return DocumentStore()


@pytest.fixture
def scripted() -> ScriptedGenerator:
    return ScriptedGenerator()
