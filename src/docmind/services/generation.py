"""Generation backends for DocMind."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, AsyncIterator, Protocol, Sequence

from docmind.services.prompt import KNOWLEDGE_MARKER, Turn

if TYPE_CHECKING:  # pragma: no cover
    from docmind.config import Settings

LOGGER = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    """Raised when the language-model provider fails mid-request."""


@dataclass(frozen=True)
class GenerationConfig:
    """Configuration for answer generation."""

    model: str = "gemini-1.5-flash"
    temperature: float = 0.7
    api_key: str | None = None
    max_output_tokens: int | None = None


class GenerationBackend(Protocol):
    """Protocol describing streaming generation behaviour."""

    def stream(
        self,
        *,
        system_instruction: str,
        turns: Sequence[Turn],
        temperature: float,
    ) -> AsyncIterator[str]:
        """Yield reply fragments as the provider produces them."""


class GeminiGenerator:
    """Streams replies from Google's Gemini models."""

    def __init__(self, config: GenerationConfig) -> None:
        if not config.api_key:
            raise GenerationError("DOCMIND_GEMINI_API_KEY is required for the gemini provider")
        self._config = config

    async def stream(
        self,
        *,
        system_instruction: str,
        turns: Sequence[Turn],
        temperature: float,
    ) -> AsyncIterator[str]:
        try:
            import google.generativeai as genai
        except ImportError as exc:
            raise GenerationError("google-generativeai is required for GeminiGenerator") from exc

        generation_config: dict[str, object] = {"temperature": temperature}
        if self._config.max_output_tokens:
            generation_config["max_output_tokens"] = self._config.max_output_tokens
        try:
            genai.configure(api_key=self._config.api_key)
            model = genai.GenerativeModel(self._config.model, system_instruction=system_instruction)
            response = await model.generate_content_async(
                [turn.to_content() for turn in turns],
                generation_config=generation_config,
                stream=True,
            )
            async for chunk in response:
                text = _chunk_text(chunk)
                if text:
                    yield text
        except GenerationError:
            raise
        except Exception as exc:
            LOGGER.warning("Gemini request failed: %s", exc)
            raise GenerationError(str(exc) or exc.__class__.__name__) from exc


def _chunk_text(chunk: object) -> str:
    # `.text` raises ValueError for chunks without text parts (e.g. a bare finish reason).
    try:
        return getattr(chunk, "text", "") or ""
    except ValueError:
        return ""


class TemplateGenerator:
    """Deterministic offline generator used for tests and environments without an API key."""

    def __init__(self, fragment_size: int = 24) -> None:
        self._fragment_size = max(1, fragment_size)

    async def stream(
        self,
        *,
        system_instruction: str,
        turns: Sequence[Turn],
        temperature: float,
    ) -> AsyncIterator[str]:
        text = self.compose(system_instruction=system_instruction, turns=turns)
        for index in range(0, len(text), self._fragment_size):
            yield text[index : index + self._fragment_size]

    @staticmethod
    def compose(*, system_instruction: str, turns: Sequence[Turn]) -> str:
        question = turns[-1].text if turns else ""
        _, _, context = system_instruction.partition(KNOWLEDGE_MARKER)
        context = context.strip()
        if context.startswith("WORKSPACE_EMPTY"):
            return "No documents are indexed yet. Upload a few text files and ask me about them."
        if context.startswith("GENERAL_QUERY"):
            names = context.rpartition("documents: ")[2].rstrip(".")
            return f"Hello, I am DocMind. Ask me anything about the indexed documents: {names}."
        if context.startswith("LOW_RELEVANCE"):
            names = context.partition("Available files in index: ")[2].partition(". ")[0]
            return f"I could not find passages matching '{question}' in {names}. Try more specific keywords."
        first_block = context.split("\n\n---\n\n", 1)[0]
        header, _, body = first_block.partition("\n")
        source = header.removeprefix("[SOURCE: ").removesuffix("]")
        return f"Based on [File: {source}]: {body.strip()}"


def build_generator(settings: "Settings") -> GenerationBackend:
    """Factory for generation backends based on the configured provider."""

    if settings.provider == "gemini":
        return GeminiGenerator(
            GenerationConfig(
                model=settings.generator_model,
                temperature=settings.generator_temperature,
                api_key=settings.gemini_api_key,
                max_output_tokens=settings.generator_max_output_tokens,
            ),
        )
    LOGGER.info("Using template generator (offline mode).")
    return TemplateGenerator()
