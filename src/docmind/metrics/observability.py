"""Observability helpers for DocMind."""

from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from typing import Callable

import structlog
from prometheus_client import Counter, Histogram

_logger_configured = False
_correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")


def configure_logging(level: int = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()
    _correlation_id_var.set("-")


def get_correlation_id() -> str:
    return _correlation_id_var.get()


def get_logger(name: str = "docmind") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


class PipelineMetrics:
    """Prometheus metrics for pipeline stages."""

    ingestion_latency = Histogram(
        "docmind_ingestion_duration_seconds",
        "Time spent reading uploaded documents.",
        buckets=(0.001, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
    )
    ingested_documents = Counter(
        "docmind_ingested_documents_total",
        "Documents ingested, by outcome.",
        ["outcome"],
    )
    retrieval_latency = Histogram(
        "docmind_retrieval_duration_seconds",
        "Time spent scoring segments for a query.",
        buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5),
    )
    retrieved_chunk_count = Histogram(
        "docmind_retrieved_chunk_count",
        "Number of segments placed in the context window.",
        buckets=(0, 1, 2, 3, 5, 8, 13),
    )
    top_score = Histogram(
        "docmind_retrieval_top_score",
        "Lexical score of the best-ranked segment.",
        buckets=(0.0, 2.5, 5.0, 10.0, 20.0, 40.0),
    )
    retrieval_outcomes = Counter(
        "docmind_retrieval_outcomes_total",
        "Retrieval results by kind (chunks or fallback sentinel).",
        ["kind"],
    )
    generation_latency = Histogram(
        "docmind_generation_duration_seconds",
        "Time spent streaming a reply from the language model.",
        buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
    )
    generation_fragments = Histogram(
        "docmind_generation_fragment_count",
        "Fragments streamed per reply.",
        buckets=(0, 1, 5, 10, 25, 50, 100, 250),
    )
    generation_failures = Counter(
        "docmind_generation_failures_total",
        "Replies that ended with a provider failure.",
    )

    @classmethod
    def observe_ingestion(cls, duration_seconds: float, *, succeeded: int, failed: int) -> None:
        cls.ingestion_latency.observe(duration_seconds)
        if succeeded:
            cls.ingested_documents.labels(outcome="ok").inc(succeeded)
        if failed:
            cls.ingested_documents.labels(outcome="failed").inc(failed)

    @classmethod
    def observe_retrieval(cls, duration_seconds: float, kind: str, scores: list[float]) -> None:
        cls.retrieval_latency.observe(duration_seconds)
        cls.retrieved_chunk_count.observe(len(scores))
        cls.retrieval_outcomes.labels(kind=kind).inc()
        if scores:
            cls.top_score.observe(max(scores))

    @classmethod
    def observe_generation(cls, duration_seconds: float, fragment_count: int, *, failed: bool = False) -> None:
        cls.generation_latency.observe(duration_seconds)
        cls.generation_fragments.observe(fragment_count)
        if failed:
            cls.generation_failures.inc()


class TimedSection:
    """Context manager capturing elapsed time for metrics."""

    def __init__(self, callback: Callable[[float], None] | None = None) -> None:
        self._callback = callback
        self._start = 0.0
        self.duration = 0.0

    def __enter__(self) -> "TimedSection":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        self.duration = time.perf_counter() - self._start
        if self._callback is not None:
            self._callback(self.duration)


__all__ = [
    "PipelineMetrics",
    "TimedSection",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
]
