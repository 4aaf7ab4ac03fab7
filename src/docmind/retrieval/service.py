"""Lexical retrieval over the in-memory document store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence

from docmind.metrics.observability import PipelineMetrics, TimedSection, get_logger
from docmind.models import Document, RetrievalResult, ScoredChunk
from docmind.retrieval.scoring import LexicalScorer, tokenize
from docmind.retrieval.segmenter import BLANK_LINE_PATTERN, segment_documents

WORKSPACE_EMPTY = (
    "WORKSPACE_EMPTY: No documents have been indexed yet. "
    "Remind the user to plant some 'seeds' (upload files)."
)
GENERAL_QUERY_TEMPLATE = (
    "GENERAL_QUERY: The user is engaging in general conversation. "
    "Currently indexed documents: {names}."
)
LOW_RELEVANCE_TEMPLATE = (
    "LOW_RELEVANCE: No direct segments matched the query keywords. "
    "Available files in index: {names}. "
    "Provide a high-level response if possible or ask for more specific keywords."
)


@dataclass(frozen=True)
class RetrievalConfig:
    """Configuration for retrieval."""

    top_k: int = 8
    min_term_length: int = 4
    base_weight: float = 2.0
    frequency_weight: float = 0.5
    general_min_tokens: int = 4
    general_terms: tuple[str, ...] = ("hi", "hello", "hey", "who", "what", "you", "help", "docmind")
    segment_pattern: str = BLANK_LINE_PATTERN
    source_template: str = "[SOURCE: {source}]\n{content}"
    chunk_separator: str = "\n\n---\n\n"
    name_separator: str = ", "


class Retriever(Protocol):
    """Build a context window for a query from the current documents."""

    def retrieve(self, query: str, documents: Iterable[Document]) -> RetrievalResult:
        """Return the context window and the chunks that produced it."""


class LexicalRetriever:
    """Ranks blank-line segments by term overlap with the query."""

    def __init__(self, config: RetrievalConfig | None = None) -> None:
        self._config = config or RetrievalConfig()
        self._scorer = LexicalScorer(
            min_term_length=self._config.min_term_length,
            base_weight=self._config.base_weight,
            frequency_weight=self._config.frequency_weight,
        )
        self._logger = get_logger("retrieval")

    @property
    def config(self) -> RetrievalConfig:
        return self._config

    def retrieve(self, query: str, documents: Iterable[Document]) -> RetrievalResult:
        with TimedSection() as timer:
            result = self._retrieve(query or "", list(documents))
        duration = timer.duration
        scores = [chunk.score for chunk in result.chunks]
        PipelineMetrics.observe_retrieval(duration, result.kind, scores)
        self._logger.info(
            "retrieval.complete",
            kind=result.kind,
            chunk_count=len(result.chunks),
            top_score=max(scores, default=0.0),
            duration_seconds=duration,
        )
        return result

    def build_context(self, query: str, documents: Iterable[Document]) -> str:
        return self.retrieve(query, documents).context

    def rank(self, query: str, documents: Sequence[Document]) -> list[ScoredChunk]:
        """Return every positively scored segment, best first, ties in document order."""

        terms = self._scorer.terms(query)
        if not terms:
            return []
        scored: list[ScoredChunk] = []
        for segment in segment_documents(documents, self._config.segment_pattern):
            score = self._scorer.score(terms, segment.content)
            if score > 0:
                scored.append(ScoredChunk(content=segment.content, source=segment.source, score=score))
        # sorted() is stable, so equal scores keep insertion order.
        return sorted(scored, key=lambda chunk: chunk.score, reverse=True)

    def is_general_query(self, query: str) -> bool:
        tokens = tokenize(query)
        if len(tokens) < self._config.general_min_tokens:
            return True
        general = set(self._config.general_terms)
        return any(token in general for token in tokens)

    def _retrieve(self, query: str, documents: Sequence[Document]) -> RetrievalResult:
        if not documents:
            return RetrievalResult(context=WORKSPACE_EMPTY, kind="workspace_empty")

        top = self.rank(query, documents)[: max(self._config.top_k, 0)]
        if top:
            blocks = [self._config.source_template.format(source=c.source, content=c.content) for c in top]
            return RetrievalResult(context=self._config.chunk_separator.join(blocks), chunks=tuple(top))

        names = self._config.name_separator.join(document.name for document in documents)
        if self.is_general_query(query):
            return RetrievalResult(context=GENERAL_QUERY_TEMPLATE.format(names=names), kind="general_query")
        return RetrievalResult(context=LOW_RELEVANCE_TEMPLATE.format(names=names), kind="low_relevance")
