"""Turn uploaded files into documents."""

from __future__ import annotations

import mimetypes
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Sequence

from langchain_community.document_loaders import BSHTMLLoader, Docx2txtLoader, PyPDFLoader, TextLoader
from langchain_community.document_loaders.base import BaseLoader

from docmind.documents.store import DocumentStore
from docmind.metrics.observability import PipelineMetrics, get_logger
from docmind.models import Document


class IngestionError(RuntimeError):
    """Raised when a single file cannot be read as text."""


@dataclass(frozen=True)
class UploadedFile:
    """File handed over by the presentation layer."""

    name: str
    data: bytes
    media_type: str = "text/plain"


@dataclass(frozen=True)
class IngestionFailure:
    name: str
    reason: str


@dataclass(frozen=True)
class IngestionReport:
    """Outcome of one upload batch; failures never block the other files."""

    documents: Sequence[Document] = ()
    failures: Sequence[IngestionFailure] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.failures


def decode_text(data: bytes, encoding: str = "utf-8") -> str:
    try:
        text = data.decode(encoding)
    except UnicodeDecodeError as exc:
        raise IngestionError(f"File is not valid {encoding} text: {exc.reason}") from exc
    # Editors on Windows save CRLF; blank-line segmentation expects bare newlines.
    return text.lstrip("\ufeff").replace("\r\n", "\n")


class DocumentIngestor:
    """Reads uploads and file paths into a ``DocumentStore``."""

    _LOADERS: Mapping[str, type[BaseLoader]] = {
        ".pdf": PyPDFLoader,
        ".docx": Docx2txtLoader,
        ".html": BSHTMLLoader,
        ".htm": BSHTMLLoader,
    }

    _logger = get_logger("ingestion")

    def __init__(self, store: DocumentStore, encoding: str = "utf-8") -> None:
        self._store = store
        self._encoding = encoding

    @property
    def store(self) -> DocumentStore:
        return self._store

    def ingest_uploads(self, files: Sequence[UploadedFile]) -> IngestionReport:
        start = time.perf_counter()
        documents: List[Document] = []
        failures: List[IngestionFailure] = []
        for upload in files:
            try:
                text = decode_text(upload.data, self._encoding)
            except IngestionError as exc:
                failures.append(self._record_failure(upload.name, exc))
                continue
            documents.append(self._add(upload.name, text, upload.media_type))
        return self._report(start, documents, failures)

    def ingest_paths(self, paths: Sequence[Path]) -> IngestionReport:
        start = time.perf_counter()
        documents: List[Document] = []
        failures: List[IngestionFailure] = []
        for path in paths:
            path = Path(path)
            try:
                text = self._load_path(path)
            except IngestionError as exc:
                failures.append(self._record_failure(path.name, exc))
                continue
            media_type, _ = mimetypes.guess_type(path.name)
            documents.append(self._add(path.name, text, media_type or "text/plain"))
        return self._report(start, documents, failures)

    def _load_path(self, path: Path) -> str:
        loader_cls = self._LOADERS.get(path.suffix.lower(), TextLoader)
        try:
            loader = self._build_loader(loader_cls, path)
            pages = loader.load()
        except Exception as exc:  # loader specific errors
            raise IngestionError(f"Failed to load {path.name}: {exc}") from exc
        # Page boundaries become blank lines so each page segments separately.
        return "\n\n".join(page.page_content.replace("\r\n", "\n") for page in pages)

    def _build_loader(self, loader_cls: type[BaseLoader], path: Path) -> BaseLoader:
        if loader_cls is TextLoader:
            return loader_cls(str(path), encoding=self._encoding)
        if loader_cls is BSHTMLLoader:
            return loader_cls(str(path), open_encoding=self._encoding, bs_kwargs={"features": "html.parser"})
        return loader_cls(str(path))

    def _add(self, name: str, text: str, media_type: str) -> Document:
        document = self._store.add(name, text, media_type)
        self._logger.info(
            "ingestion.complete",
            document_id=document.document_id,
            name=name,
            characters=len(text),
        )
        return document

    def _record_failure(self, name: str, exc: IngestionError) -> IngestionFailure:
        self._logger.warning("ingestion.failed", name=name, detail=str(exc))
        return IngestionFailure(name=name, reason=str(exc))

    def _report(self, start: float, documents: List[Document], failures: List[IngestionFailure]) -> IngestionReport:
        PipelineMetrics.observe_ingestion(
            time.perf_counter() - start,
            succeeded=len(documents),
            failed=len(failures),
        )
        return IngestionReport(documents=tuple(documents), failures=tuple(failures))
