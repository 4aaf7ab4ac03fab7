"""In-memory document store for one application session."""

from __future__ import annotations

from typing import Dict, Iterator, Tuple
from uuid import uuid4

from docmind.models import Document, utcnow


class DocumentStore:
    """Ordered, in-memory collection of uploaded documents.

    The store is only mutated between retrieval calls, so it carries no locking.
    """

    def __init__(self) -> None:
        self._documents: Dict[str, Document] = {}

    def add(self, name: str, content: str, media_type: str = "text/plain") -> Document:
        document = Document(
            document_id=uuid4().hex,
            name=name,
            content=content,
            media_type=media_type,
            created_at=utcnow(),
        )
        self._documents[document.document_id] = document
        return document

    def remove(self, document_id: str) -> bool:
        """Remove a document by id; unknown ids are ignored."""

        return self._documents.pop(document_id, None) is not None

    def get(self, document_id: str) -> Document | None:
        return self._documents.get(document_id)

    def list(self) -> Tuple[Document, ...]:
        return tuple(self._documents.values())

    def names(self) -> Tuple[str, ...]:
        return tuple(document.name for document in self._documents.values())

    def clear(self) -> None:
        self._documents.clear()

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self) -> Iterator[Document]:
        return iter(self.list())

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._documents
