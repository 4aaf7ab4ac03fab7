"""Shared domain models used across the DocMind pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal, Sequence

Role = Literal["user", "assistant"]
RetrievalKind = Literal["chunks", "workspace_empty", "general_query", "low_relevance"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Document:
    """An uploaded document held by the in-memory store."""

    document_id: str
    name: str
    content: str
    media_type: str = "text/plain"
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Segment:
    """Paragraph-sized slice of a document's text."""

    content: str
    source: str


@dataclass(frozen=True)
class ScoredChunk:
    """Segment that matched the query, with its lexical score."""

    content: str
    source: str
    score: float


@dataclass(frozen=True)
class RetrievalResult:
    """Context window produced for one query."""

    context: str
    chunks: Sequence[ScoredChunk] = ()
    kind: RetrievalKind = "chunks"

    @property
    def sources(self) -> tuple[str, ...]:
        seen: list[str] = []
        for chunk in self.chunks:
            if chunk.source not in seen:
                seen.append(chunk.source)
        return tuple(seen)


@dataclass(frozen=True)
class Message:
    """Single chat message in a conversation."""

    message_id: str
    role: Role
    text: str
    created_at: datetime = field(default_factory=utcnow)
    sources: Sequence[str] = ()


@dataclass(frozen=True)
class Answer:
    """Fully drained assistant reply."""

    text: str
    sources: Sequence[str]
    kind: RetrievalKind
    query_id: str
    latency_ms: float
    retrieval_ms: float | None = None
    generation_ms: float | None = None
