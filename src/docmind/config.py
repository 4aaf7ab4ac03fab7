"""Runtime configuration for the DocMind services."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from docmind.retrieval.service import RetrievalConfig


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="docmind_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"

    # Language-model provider
    provider: Literal["gemini", "template"] = "template"
    gemini_api_key: str | None = None
    generator_model: str = "gemini-1.5-flash"
    generator_temperature: float = 0.7
    generator_max_output_tokens: int | None = None

    # Retrieval constants
    retrieval_top_k: int = 8
    retrieval_min_term_length: int = 4
    retrieval_base_weight: float = 2.0
    retrieval_frequency_weight: float = 0.5
    retrieval_general_min_tokens: int = 4
    retrieval_general_terms: tuple[str, ...] | str = ("hi", "hello", "hey", "who", "what", "you", "help", "docmind")

    evaluation_min_recall: float = 0.5
    evaluation_min_mrr: float = 0.5
    evaluation_min_kind_accuracy: float = 1.0

    # API & upload safety
    max_files: int = 12
    max_upload_size_mb: int = 25  # per file

    # CORS
    cors_allow_origins: tuple[str, ...] = ()
    cors_allow_credentials: bool = False
    cors_allow_methods: tuple[str, ...] = ("GET", "POST", "DELETE", "OPTIONS")
    cors_allow_headers: tuple[str, ...] = ("*",)

    # Security
    api_key: str | None = None  # if set, required in X-API-Key header
    rate_limit_requests: int = 120  # per window per client
    rate_limit_window_seconds: int = 60

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def general_terms_tuple(self) -> tuple[str, ...]:
        value = self.retrieval_general_terms
        if isinstance(value, str):
            return tuple(p.strip().lower() for p in value.split(",") if p.strip())
        return tuple(term.lower() for term in value)

    def retrieval_config(self) -> RetrievalConfig:
        return RetrievalConfig(
            top_k=self.retrieval_top_k,
            min_term_length=self.retrieval_min_term_length,
            base_weight=self.retrieval_base_weight,
            frequency_weight=self.retrieval_frequency_weight,
            general_min_tokens=self.retrieval_general_min_tokens,
            general_terms=self.general_terms_tuple,
        )


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
