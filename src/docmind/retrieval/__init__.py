"""Retrieval components."""

from .scoring import LexicalScorer, important_terms, score_segment, tokenize
from .segmenter import segment_documents, split_segments
from .service import LexicalRetriever, RetrievalConfig, Retriever

__all__ = [
    "LexicalRetriever",
    "LexicalScorer",
    "RetrievalConfig",
    "Retriever",
    "important_terms",
    "score_segment",
    "segment_documents",
    "split_segments",
    "tokenize",
]
