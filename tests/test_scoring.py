from __future__ import annotations

from docmind.retrieval.scoring import LexicalScorer, important_terms, score_segment, tokenize


def test_tokenize_lowercases_and_splits_on_word_boundaries():
    assert tokenize("What's the Revenue, in Q3?") == ["what", "s", "the", "revenue", "in", "q3"]


def test_important_terms_drop_short_words():
    assert important_terms(["the", "and", "revenue", "growth", "cost"]) == ["revenue", "growth", "cost"]


def test_score_adds_base_weight_and_frequency_boost():
    assert score_segment(["revenue"], "revenue rose; revenue fell") == 2.0 + 2 * 0.5


def test_score_sums_over_terms_and_ignores_missing_ones():
    score = score_segment(["revenue", "quebec", "ontario"], "revenue grew in quebec")
    assert score == (2.0 + 0.5) + (2.0 + 0.5)


def test_terms_match_as_substrings():
    assert score_segment(["revenue"], "revenues were strong") == 2.5


def test_repeated_query_terms_count_each_time():
    scorer = LexicalScorer()
    terms = scorer.terms("sales sales")
    assert terms == ["sales", "sales"]
    assert scorer.score(terms, "Sales") == 5.0


def test_no_important_terms_scores_zero():
    scorer = LexicalScorer()
    assert scorer.terms("hi to you") == []
    assert scorer.score([], "anything at all") == 0.0


def test_custom_weights():
    scorer = LexicalScorer(min_term_length=2, base_weight=1.0, frequency_weight=1.0)
    assert scorer.score(scorer.terms("go"), "go go go") == 4.0
