"""Pydantic models for the DocMind API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class DocumentSummary(BaseModel):
    document_id: str = Field(..., description="Identifier assigned at upload time")
    name: str = Field(..., description="Display name, usually the original filename")
    media_type: str = Field(..., description="Declared media type (informational only)")
    characters: int = Field(..., ge=0, description="Length of the document text")
    created_at: datetime


class IngestionFailureModel(BaseModel):
    name: str
    reason: str


class DocumentUploadResponse(BaseModel):
    documents: List[DocumentSummary]
    failures: List[IngestionFailureModel] = Field(default_factory=list)


class DocumentListResponse(BaseModel):
    documents: List[DocumentSummary]


class TextDocument(BaseModel):
    name: str = Field(..., min_length=1)
    content: str
    media_type: str = "text/plain"


class TextIngestionRequest(BaseModel):
    """Payload for adding documents from raw text."""

    documents: List[TextDocument] = Field(..., description="Documents to add to the workspace")


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    text: str


class QueryRequest(BaseModel):
    question: Optional[str] = Field(default=None, description="End-user message")
    action: Optional[Literal["summarize", "insights", "conflicts"]] = Field(
        default=None,
        description="Canned workspace action used instead of a free-form question",
    )
    history: List[HistoryMessage] = Field(default_factory=list, description="Prior messages, oldest first")

    @model_validator(mode="after")
    def _require_question_or_action(self) -> "QueryRequest":
        if self.action is None and not (self.question or "").strip():
            raise ValueError("Either a non-empty question or an action is required")
        return self


class RetrieveRequest(BaseModel):
    question: str = Field(..., description="Query used to rank document segments")


class ChunkModel(BaseModel):
    source: str
    content: str
    score: float


class RetrieveResponse(BaseModel):
    kind: str
    context: str
    chunks: List[ChunkModel]


class QueryResponse(BaseModel):
    query_id: str
    answer: str
    sources: List[str]
    kind: str
    latency_ms: float
    retrieval_ms: Optional[float] = None
    generation_ms: Optional[float] = None
