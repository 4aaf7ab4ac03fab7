"""HTTPX client for the DocMind API."""

from __future__ import annotations

import json
import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Sequence

import httpx

from docmind.api.schemas import DocumentListResponse, DocumentUploadResponse, QueryResponse, RetrieveResponse
from docmind.metrics.observability import get_logger
from docmind.models import Message
from docmind.services.conversation import Conversation

DEFAULT_API_URL = os.getenv("DOCMIND_API_URL", "http://localhost:8000")
LOGGER = get_logger("client")


class APIError(RuntimeError):
    """Raised when communication with the DocMind API fails."""


@dataclass
class DocMindClient:
    """HTTPX-based client for the DocMind FastAPI service."""

    base_url: str = DEFAULT_API_URL
    timeout: float = 30.0
    api_key: str | None = None
    transport: httpx.BaseTransport | None = None

    def __post_init__(self) -> None:
        headers = {"X-API-Key": self.api_key} if self.api_key else None
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers,
            transport=self.transport,
        )

    def upload_documents(self, paths: Sequence[Path]) -> DocumentUploadResponse:
        files: list[tuple[str, tuple[str, bytes, str]]] = []
        for path in paths:
            mime, _ = mimetypes.guess_type(path.name)
            files.append(("files", (path.name, path.read_bytes(), mime or "application/octet-stream")))
        response = self._client.post("/documents", files=files)
        _raise_for_status(response, "Upload")
        return DocumentUploadResponse.model_validate(response.json())

    def add_text(self, name: str, content: str, media_type: str = "text/plain") -> DocumentUploadResponse:
        payload = {"documents": [{"name": name, "content": content, "media_type": media_type}]}
        response = self._client.post("/documents/text", json=payload)
        _raise_for_status(response, "Upload")
        return DocumentUploadResponse.model_validate(response.json())

    def list_documents(self) -> DocumentListResponse:
        response = self._client.get("/documents")
        _raise_for_status(response, "Listing")
        return DocumentListResponse.model_validate(response.json())

    def remove_document(self, document_id: str) -> None:
        response = self._client.delete(f"/documents/{document_id}")
        _raise_for_status(response, "Removal")

    def retrieve(self, question: str) -> RetrieveResponse:
        response = self._client.post("/retrieve", json={"question": question})
        _raise_for_status(response, "Retrieval")
        return RetrieveResponse.model_validate(response.json())

    def query(self, question: str, history: Iterable[Message] = ()) -> QueryResponse:
        response = self._client.post("/query", json=_query_payload(question, history))
        _raise_for_status(response, "Query")
        return QueryResponse.model_validate(response.json())

    def stream_query(
        self,
        question: str,
        history: Iterable[Message] = (),
        *,
        sources: list[str] | None = None,
    ) -> Iterator[str]:
        """Yield reply fragments; document names cited are appended to ``sources``."""

        headers = {"Accept": "text/event-stream"}
        with self._client.stream("POST", "/query/stream", json=_query_payload(question, history), headers=headers) as r:
            if r.status_code >= 400:
                cid = r.headers.get("X-Correlation-ID", "-")
                raise APIError(f"Stream failed ({r.status_code}) [cid={cid}]")
            buffer = ""
            for text in r.iter_text():
                if not text:
                    continue
                buffer += text
                while "\n\n" in buffer:
                    event, buffer = buffer.split("\n\n", 1)
                    name, data = _parse_event(event)
                    if data is None:
                        continue
                    if name == "error":
                        raise APIError(json.loads(data))
                    if name == "sources":
                        if sources is not None:
                            sources.extend(json.loads(data))
                        continue
                    yield json.loads(data)

    def chat(self, conversation: Conversation, question: str) -> Message | None:
        """Send ``question`` and stream the reply into ``conversation``."""

        pending = conversation.begin(question)
        sources: list[str] = []
        try:
            for fragment in self.stream_query(question, conversation.history(), sources=sources):
                conversation.append(fragment)
        except (APIError, httpx.HTTPError) as exc:
            LOGGER.warning(
                "client.reply_failed",
                conversation_id=conversation.conversation_id,
                message_id=pending.message_id,
                detail=str(exc),
            )
            return conversation.fail()
        except Exception:
            conversation.fail()
            raise
        return conversation.complete(sources)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "DocMindClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _query_payload(question: str, history: Iterable[Message]) -> dict[str, object]:
    return {
        "question": question,
        "history": [{"role": message.role, "text": message.text} for message in history],
    }


def _parse_event(event: str) -> tuple[str, str | None]:
    name = "message"
    data_lines: list[str] = []
    for line in event.splitlines():
        if line.startswith(":"):
            continue
        if line.startswith("event: "):
            name = line[len("event: ") :]
        elif line.startswith("data: "):
            data_lines.append(line[len("data: ") :])
    if not data_lines:
        return name, None
    return name, "\n".join(data_lines)


def _raise_for_status(response: httpx.Response, action: str) -> None:
    if response.status_code >= 400:
        cid = response.headers.get("X-Correlation-ID", "-")
        raise APIError(f"{action} failed ({response.status_code}) [cid={cid}]: {response.text}")
