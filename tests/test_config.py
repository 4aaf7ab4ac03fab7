from __future__ import annotations

from docmind.config import get_settings
from docmind.retrieval.service import RetrievalConfig


def test_defaults_match_retrieval_constants():
    settings = get_settings({"environment": "test"})
    assert settings.generator_temperature == 0.7
    assert settings.provider == "template"
    assert settings.retrieval_config() == RetrievalConfig()


def test_general_terms_accept_comma_separated_string():
    settings = get_settings({"retrieval_general_terms": "Hi, Yo ,"})
    assert settings.general_terms_tuple == ("hi", "yo")
    assert settings.retrieval_config().general_terms == ("hi", "yo")


def test_upload_limits_defaults():
    settings = get_settings({"environment": "test"})
    assert settings.max_files >= 1
    assert settings.max_upload_size_mb >= 1
