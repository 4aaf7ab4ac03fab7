"""Query orchestration combining retrieval and streamed generation."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Iterable, Sequence
from uuid import NAMESPACE_URL, uuid5

from docmind.metrics.observability import PipelineMetrics, get_logger
from docmind.models import Answer, Document, Message, RetrievalResult
from docmind.retrieval.service import LexicalRetriever, Retriever
from docmind.services.generation import GenerationBackend, GenerationError, TemplateGenerator
from docmind.services.prompt import PromptBuilder, Turn


@dataclass(frozen=True)
class PreparedQuery:
    """Everything sent to the provider for one query."""

    query: str
    retrieval: RetrievalResult
    system_instruction: str
    turns: Sequence[Turn]


class ReplyStream:
    """Consumer side of a streamed reply.

    Iterate with ``async for`` to pull fragments in arrival order. ``aclose()``
    stops the reply and closes the provider stream. A provider failure ends
    the stream with a single ``GenerationError``; ``text`` then holds the
    partial reply received before it.
    """

    def __init__(
        self,
        fragments: AsyncIterator[str],
        retrieval: RetrievalResult,
        *,
        on_finish: Callable[["ReplyStream"], None] | None = None,
    ) -> None:
        self._source = fragments
        self._on_finish = on_finish
        self.retrieval = retrieval
        self.fragments: list[str] = []
        self.error: GenerationError | None = None
        self.closed = False
        self.cancelled = False
        self.started_at = time.perf_counter()
        self.finished_at: float | None = None

    @property
    def text(self) -> str:
        return "".join(self.fragments)

    @property
    def sources(self) -> tuple[str, ...]:
        return self.retrieval.sources

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.perf_counter()
        return end - self.started_at

    def __aiter__(self) -> "ReplyStream":
        return self

    async def __anext__(self) -> str:
        while not self.closed:
            try:
                fragment = await self._source.__anext__()
            except StopAsyncIteration:
                self._finish()
                raise
            except GenerationError as exc:
                self.error = exc
                self._finish()
                raise
            except Exception as exc:
                self.error = GenerationError(str(exc) or exc.__class__.__name__)
                self._finish()
                raise self.error from exc
            if fragment:
                self.fragments.append(fragment)
                return fragment
        raise StopAsyncIteration

    async def aclose(self) -> None:
        if self.closed:
            return
        self.cancelled = True
        self._finish()
        close = getattr(self._source, "aclose", None)
        if close is not None:
            await close()

    async def collect(self) -> str:
        async for _ in self:
            pass
        return self.text

    async def __aenter__(self) -> "ReplyStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def _finish(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.finished_at = time.perf_counter()
        if self._on_finish is not None:
            self._on_finish(self)


class QueryService:
    """Orchestrates retrieval, prompt assembly and the streamed reply."""

    def __init__(
        self,
        retriever: Retriever | None = None,
        generator: GenerationBackend | None = None,
        prompt_builder: PromptBuilder | None = None,
        *,
        temperature: float = 0.7,
    ) -> None:
        self._retriever = retriever or LexicalRetriever()
        self._generator = generator or TemplateGenerator()
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._temperature = temperature
        self._logger = get_logger("query")

    def prepare(self, query: str, history: Iterable[Message], documents: Iterable[Document]) -> PreparedQuery:
        retrieval = self._retriever.retrieve(query, documents)
        return PreparedQuery(
            query=query,
            retrieval=retrieval,
            system_instruction=self._prompt_builder.build_instruction(retrieval.context),
            turns=self._prompt_builder.build_turns(history, query),
        )

    def stream_reply(
        self,
        query: str,
        history: Iterable[Message],
        documents: Iterable[Document],
    ) -> ReplyStream:
        prepared = self.prepare(query, history, documents)
        fragments = self._generator.stream(
            system_instruction=prepared.system_instruction,
            turns=prepared.turns,
            temperature=self._temperature,
        )
        return ReplyStream(fragments, prepared.retrieval, on_finish=self._record)

    async def answer(
        self,
        query: str,
        history: Iterable[Message] = (),
        documents: Iterable[Document] = (),
    ) -> Answer:
        start = time.perf_counter()
        stream = self.stream_reply(query, history, documents)
        retrieval_ms = (time.perf_counter() - start) * 1000
        text = await stream.collect()
        return Answer(
            text=text,
            sources=stream.sources,
            kind=stream.retrieval.kind,
            query_id=uuid5(NAMESPACE_URL, query).hex,
            latency_ms=(time.perf_counter() - start) * 1000,
            retrieval_ms=retrieval_ms,
            generation_ms=stream.duration_seconds * 1000,
        )

    def _record(self, stream: ReplyStream) -> None:
        failed = stream.error is not None
        PipelineMetrics.observe_generation(stream.duration_seconds, len(stream.fragments), failed=failed)
        if failed:
            self._logger.error(
                "generation.failed",
                detail=str(stream.error),
                partial_characters=len(stream.text),
                fragment_count=len(stream.fragments),
            )
            return
        self._logger.info(
            "generation.cancelled" if stream.cancelled else "generation.complete",
            kind=stream.retrieval.kind,
            fragment_count=len(stream.fragments),
            characters=len(stream.text),
            duration_seconds=stream.duration_seconds,
        )
