"""CLI for evaluating DocMind retrieval accuracy."""

from __future__ import annotations

import argparse
import json
import statistics
import sys
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Sequence

from docmind.config import Settings, get_settings
from docmind.documents import DocumentStore
from docmind.retrieval.service import LexicalRetriever


@dataclass(frozen=True)
class DocumentFixture:
    id: str
    name: str
    content: str


@dataclass(frozen=True)
class QueryFixture:
    question: str
    relevant_document_ids: Sequence[str]
    expected_kind: str | None = None


@dataclass(frozen=True)
class EvaluationResult:
    total_queries: int
    hits: int
    recall_at_k: float
    mean_reciprocal_rank: float
    average_latency_ms: float
    details: List[dict]
    retrieval_queries: int = 0
    kind_checks: int = 0
    kind_matches: int = 0

    @property
    def kind_accuracy(self) -> float:
        return self.kind_matches / self.kind_checks if self.kind_checks else 1.0

    def to_dict(self) -> dict:
        return {
            "total_queries": self.total_queries,
            "retrieval_queries": self.retrieval_queries,
            "hits": self.hits,
            "recall_at_k": self.recall_at_k,
            "mean_reciprocal_rank": self.mean_reciprocal_rank,
            "kind_checks": self.kind_checks,
            "kind_accuracy": self.kind_accuracy,
            "average_latency_ms": self.average_latency_ms,
            "details": self.details,
        }


def load_dataset(path: Path) -> tuple[list[DocumentFixture], list[QueryFixture]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    documents = [
        DocumentFixture(id=item["id"], name=item.get("name") or f"{item['id']}.txt", content=item["content"])
        for item in data["documents"]
    ]
    queries = [
        QueryFixture(
            question=item["question"],
            relevant_document_ids=item.get("relevant_document_ids", []),
            expected_kind=item.get("expected_kind"),
        )
        for item in data["queries"]
    ]
    return documents, queries


def run_evaluation(
    dataset_path: Path,
    *,
    top_k: int | None = None,
    settings: Settings | None = None,
    json_out: Path | None = None,
    markdown_out: Path | None = None,
) -> EvaluationResult:
    settings = settings or get_settings()
    documents, queries = load_dataset(dataset_path)

    store = DocumentStore()
    source_lookup: dict[str, str] = {}
    for fixture in documents:
        store.add(fixture.name, fixture.content)
        source_lookup[fixture.name] = fixture.id

    config = settings.retrieval_config()
    if top_k is not None:
        config = replace(config, top_k=top_k)
    retriever = LexicalRetriever(config)

    hits = 0
    kind_checks = 0
    kind_matches = 0
    reciprocal_ranks: list[float] = []
    latencies: list[float] = []
    details: list[dict] = []

    for query in queries:
        start = time.perf_counter()
        result = retriever.retrieve(query.question, store.list())
        latencies.append((time.perf_counter() - start) * 1000)
        retrieved_ids = [source_lookup[name] for name in result.sources if name in source_lookup]
        relevant_set = set(query.relevant_document_ids)
        kind_match = None
        if query.expected_kind is not None:
            kind_match = result.kind == query.expected_kind
            kind_checks += 1
            if kind_match:
                kind_matches += 1
        # Fallback queries have nothing to rank; only their kind is scored.
        if relevant_set:
            rank = None
            for index, doc_id in enumerate(retrieved_ids, start=1):
                if doc_id in relevant_set:
                    rank = index
                    break
            if rank is not None:
                hits += 1
                reciprocal_ranks.append(1 / rank)
            else:
                reciprocal_ranks.append(0.0)
        details.append(
            {
                "question": query.question,
                "kind": result.kind,
                "expected_kind": query.expected_kind,
                "kind_match": kind_match,
                "retrieved": retrieved_ids,
                "relevant": list(query.relevant_document_ids),
                "latency_ms": latencies[-1],
            },
        )

    retrieval_queries = len(reciprocal_ranks)
    recall = hits / retrieval_queries if retrieval_queries else 0.0
    mrr = statistics.fmean(reciprocal_ranks) if reciprocal_ranks else 0.0
    avg_latency = statistics.fmean(latencies) if latencies else 0.0
    result = EvaluationResult(
        total_queries=len(queries),
        hits=hits,
        recall_at_k=recall,
        mean_reciprocal_rank=mrr,
        average_latency_ms=avg_latency,
        details=details,
        retrieval_queries=retrieval_queries,
        kind_checks=kind_checks,
        kind_matches=kind_matches,
    )

    if json_out:
        json_out.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
    if markdown_out:
        markdown_out.write_text(_format_markdown(result), encoding="utf-8")
    return result


def _format_markdown(result: EvaluationResult) -> str:
    lines = [
        "# DocMind Retrieval Report",
        "",
        f"- Total queries: {result.total_queries}",
        f"- Hits: {result.hits}",
        f"- Recall@k: {result.recall_at_k:.2f}",
        f"- MRR: {result.mean_reciprocal_rank:.2f}",
        f"- Kind accuracy: {result.kind_accuracy:.2f} ({result.kind_checks} checked)",
        f"- Avg latency (ms): {result.average_latency_ms:.2f}",
        "",
        "| Question | Kind | Retrieved | Relevant |",
        "| --- | --- | --- | --- |",
    ]
    for item in result.details:
        retrieved = ", ".join(item["retrieved"]) if item["retrieved"] else "-"
        relevant = ", ".join(item["relevant"]) if item["relevant"] else "-"
        lines.append(f"| {item['question']} | {item['kind']} | {retrieved} | {relevant} |")
    return "\n".join(lines)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Evaluate DocMind retrieval accuracy.")
    parser.add_argument(
        "--dataset",
        type=Path,
        default=Path("evaluations/fixtures/sample.json"),
        help="Path to evaluation dataset JSON file.",
    )
    parser.add_argument("--top-k", type=int, default=None, help="Override the retriever top-k")
    parser.add_argument("--json-out", type=Path, default=None, help="Optional path to write JSON report")
    parser.add_argument("--markdown-out", type=Path, default=None, help="Optional path to write Markdown report")
    parser.add_argument("--min-recall", type=float, default=None, help="Override recall threshold")
    parser.add_argument("--min-mrr", type=float, default=None, help="Override MRR threshold")
    parser.add_argument("--min-kind-accuracy", type=float, default=None, help="Override kind accuracy threshold")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    settings = get_settings()
    min_recall = args.min_recall if args.min_recall is not None else settings.evaluation_min_recall
    min_mrr = args.min_mrr if args.min_mrr is not None else settings.evaluation_min_mrr
    min_kind = args.min_kind_accuracy if args.min_kind_accuracy is not None else settings.evaluation_min_kind_accuracy

    result = run_evaluation(
        args.dataset,
        top_k=args.top_k,
        settings=settings,
        json_out=args.json_out,
        markdown_out=args.markdown_out,
    )
    print(json.dumps(result.to_dict(), indent=2))

    if (
        result.recall_at_k < min_recall
        or result.mean_reciprocal_rank < min_mrr
        or result.kind_accuracy < min_kind
    ):
        print(
            f"Evaluation failed thresholds (recall {result.recall_at_k:.2f} vs {min_recall}, "
            f"MRR {result.mean_reciprocal_rank:.2f} vs {min_mrr}, "
            f"kind accuracy {result.kind_accuracy:.2f} vs {min_kind})",
            file=sys.stderr,
        )
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
