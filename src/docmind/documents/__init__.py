"""Document store and upload handling."""

from .ingestion import (
    DocumentIngestor,
    IngestionError,
    IngestionFailure,
    IngestionReport,
    UploadedFile,
    decode_text,
)
from .store import DocumentStore

__all__ = [
    "DocumentIngestor",
    "DocumentStore",
    "IngestionError",
    "IngestionFailure",
    "IngestionReport",
    "UploadedFile",
    "decode_text",
]
