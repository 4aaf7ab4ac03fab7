"""Term-overlap scoring of segments against a query."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Sequence

_WORD = re.compile(r"\w+")


def tokenize(text: str) -> List[str]:
    """Lower-case ``text`` and return its whole-word tokens in order."""

    return _WORD.findall((text or "").lower())


def important_terms(tokens: Sequence[str], min_length: int = 4) -> List[str]:
    # Duplicates are kept: a repeated query word counts once per repetition.
    return [token for token in tokens if len(token) >= min_length]


def score_segment(
    terms: Sequence[str],
    segment: str,
    *,
    base_weight: float = 2.0,
    frequency_weight: float = 0.5,
) -> float:
    """Score a lower-cased segment against lower-cased important terms.

    Every term present in the segment contributes ``base_weight`` plus
    ``frequency_weight`` for each non-overlapping occurrence. Terms are matched
    as substrings, so ``"revenue"`` also hits ``"revenues"``.
    """

    score = 0.0
    for term in terms:
        count = segment.count(term)
        if count:
            score += base_weight + count * frequency_weight
    return score


@dataclass(frozen=True)
class LexicalScorer:
    """Bundles the scoring weights and the important-term threshold."""

    min_term_length: int = 4
    base_weight: float = 2.0
    frequency_weight: float = 0.5

    def terms(self, query: str) -> List[str]:
        return important_terms(tokenize(query), self.min_term_length)

    def score(self, terms: Sequence[str], segment: str) -> float:
        if not terms:
            return 0.0
        return score_segment(
            terms,
            segment.lower(),
            base_weight=self.base_weight,
            frequency_weight=self.frequency_weight,
        )
