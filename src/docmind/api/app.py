"""FastAPI application exposing DocMind services."""

from __future__ import annotations

import json
import time
from collections import deque
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Sequence
from uuid import uuid4

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from docmind.api.schemas import (
    ChunkModel,
    DocumentListResponse,
    DocumentSummary,
    DocumentUploadResponse,
    IngestionFailureModel,
    QueryRequest,
    QueryResponse,
    RetrieveRequest,
    RetrieveResponse,
    TextIngestionRequest,
)
from docmind.config import Settings, get_settings
from docmind.documents import DocumentIngestor, DocumentStore, IngestionReport, UploadedFile
from docmind.metrics.observability import bind_correlation_id, clear_correlation_id, configure_logging, get_logger
from docmind.models import Document, Message
from docmind.retrieval.service import LexicalRetriever, Retriever
from docmind.services.conversation import SERVICE_UNAVAILABLE_NOTICE, WORKSPACE_ACTIONS
from docmind.services.generation import GenerationError, build_generator
from docmind.services.query import QueryService


@dataclass(frozen=True)
class AppDependencies:
    store: DocumentStore
    ingestor: DocumentIngestor
    retriever: Retriever
    query_service: QueryService


def _build_dependencies(settings: Settings) -> AppDependencies:
    store = DocumentStore()
    retriever = LexicalRetriever(settings.retrieval_config())
    query_service = QueryService(
        retriever=retriever,
        generator=build_generator(settings),
        temperature=settings.generator_temperature,
    )
    return AppDependencies(
        store=store,
        ingestor=DocumentIngestor(store),
        retriever=retriever,
        query_service=query_service,
    )


class RateLimiter:
    """Sliding-window request limiter keyed by client address and path."""

    def __init__(self, requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.requests = requests
        self.window = window_seconds
        self._clock = clock
        self._buckets: dict[str, deque[float]] = {}
        self._last_sweep = clock()

    def __call__(self, request: Request) -> None:
        client_ip = request.headers.get("x-forwarded-for") or (request.client.host if request.client else "-")
        self.hit(f"{client_ip}:{request.url.path}")

    def __len__(self) -> int:
        return len(self._buckets)

    def hit(self, key: str) -> None:
        now = self._clock()
        cutoff = now - self.window
        if now - self._last_sweep >= self.window:
            self._sweep(cutoff)
            self._last_sweep = now
        bucket = self._buckets.pop(key, None) or deque()
        while bucket and bucket[0] < cutoff:
            bucket.popleft()
        if len(bucket) >= self.requests:
            self._buckets[key] = bucket
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")
        bucket.append(now)
        self._buckets[key] = bucket

    def _sweep(self, cutoff: float) -> None:
        for key in list(self._buckets):
            bucket = self._buckets[key]
            while bucket and bucket[0] < cutoff:
                bucket.popleft()
            if not bucket:
                del self._buckets[key]


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()
    deps = dependencies or _build_dependencies(settings)

    configure_logging()
    logger = get_logger("api")
    app = FastAPI(title="DocMind API", version="0.1.0")
    app.state.dependencies = deps

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_allow_origins),
            allow_credentials=settings.cors_allow_credentials,
            allow_methods=list(settings.cors_allow_methods),
            allow_headers=list(settings.cors_allow_headers),
        )

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    def require_api_key(request: Request) -> None:
        expected = settings.api_key
        if not expected:
            return
        provided = request.headers.get("X-API-Key")
        if provided != expected:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")

    rate_limiter = RateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)

    @app.exception_handler(GenerationError)
    async def handle_generation_error(request: Request, exc: GenerationError) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        logger.error("generation.error", correlation_id=correlation_id, detail=str(exc))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": SERVICE_UNAVAILABLE_NOTICE, "correlation_id": correlation_id},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        logger.error("unhandled.error", correlation_id=correlation_id, detail=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal Server Error", "correlation_id": correlation_id},
        )

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    def get_store(dep: AppDependencies = Depends(get_dependencies)) -> DocumentStore:
        return dep.store

    def get_ingestor(dep: AppDependencies = Depends(get_dependencies)) -> DocumentIngestor:
        return dep.ingestor

    def get_retriever(dep: AppDependencies = Depends(get_dependencies)) -> Retriever:
        return dep.retriever

    def get_query_service(dep: AppDependencies = Depends(get_dependencies)) -> QueryService:
        return dep.query_service

    @app.post("/documents", response_model=DocumentUploadResponse, status_code=status.HTTP_201_CREATED)
    async def upload_documents(
        files: Sequence[UploadFile] = File(...),
        ingestor: DocumentIngestor = Depends(get_ingestor),
        _auth: None = Depends(require_api_key),
        _rl: None = Depends(rate_limiter.__call__),
    ) -> DocumentUploadResponse:
        if not files:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files provided")
        if len(files) > settings.max_files:
            raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Too many files")

        limit = settings.max_upload_size_mb * 1024 * 1024
        uploads: list[UploadedFile] = []
        oversized: list[IngestionFailureModel] = []
        for upload in files:
            filename = upload.filename or f"upload-{uuid4().hex}"
            data = await upload.read(limit + 1)
            await upload.close()
            if len(data) > limit:
                oversized.append(
                    IngestionFailureModel(name=filename, reason=f"File too large (>{settings.max_upload_size_mb}MB)"),
                )
                continue
            uploads.append(
                UploadedFile(name=filename, data=data, media_type=upload.content_type or "application/octet-stream"),
            )
        report = ingestor.ingest_uploads(uploads)
        response = _build_upload_response(report)
        response.failures.extend(oversized)
        return response

    @app.post("/documents/text", response_model=DocumentUploadResponse, status_code=status.HTTP_201_CREATED)
    async def ingest_raw_text(
        payload: TextIngestionRequest,
        ingestor: DocumentIngestor = Depends(get_ingestor),
        _auth: None = Depends(require_api_key),
        _rl: None = Depends(rate_limiter.__call__),
    ) -> DocumentUploadResponse:
        if not payload.documents:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No documents provided")
        uploads = [
            UploadedFile(name=item.name, data=item.content.encode("utf-8"), media_type=item.media_type)
            for item in payload.documents
        ]
        return _build_upload_response(ingestor.ingest_uploads(uploads))

    @app.get("/documents", response_model=DocumentListResponse)
    async def list_documents(
        store: DocumentStore = Depends(get_store),
        _auth: None = Depends(require_api_key),
    ) -> DocumentListResponse:
        return DocumentListResponse(documents=[_summarize(document) for document in store])

    @app.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def remove_document(
        document_id: str,
        store: DocumentStore = Depends(get_store),
        _auth: None = Depends(require_api_key),
    ) -> Response:
        removed = store.remove(document_id)
        logger.info("document.removed", document_id=document_id, found=removed)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.delete("/documents", status_code=status.HTTP_204_NO_CONTENT)
    async def clear_documents(
        store: DocumentStore = Depends(get_store),
        _auth: None = Depends(require_api_key),
    ) -> Response:
        store.clear()
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/retrieve", response_model=RetrieveResponse)
    async def retrieve_context(
        payload: RetrieveRequest,
        store: DocumentStore = Depends(get_store),
        retriever: Retriever = Depends(get_retriever),
        _auth: None = Depends(require_api_key),
        _rl: None = Depends(rate_limiter.__call__),
    ) -> RetrieveResponse:
        result = retriever.retrieve(payload.question, store.list())
        return RetrieveResponse(
            kind=result.kind,
            context=result.context,
            chunks=[ChunkModel(source=c.source, content=c.content, score=c.score) for c in result.chunks],
        )

    @app.post("/query", response_model=QueryResponse)
    async def query_documents(
        payload: QueryRequest,
        store: DocumentStore = Depends(get_store),
        service: QueryService = Depends(get_query_service),
        _auth: None = Depends(require_api_key),
        _rl: None = Depends(rate_limiter.__call__),
    ) -> QueryResponse:
        answer = await service.answer(_question(payload), _history(payload), store.list())
        return QueryResponse(
            query_id=answer.query_id,
            answer=answer.text,
            sources=list(answer.sources),
            kind=answer.kind,
            latency_ms=answer.latency_ms,
            retrieval_ms=answer.retrieval_ms,
            generation_ms=answer.generation_ms,
        )

    @app.post("/query/stream")
    async def query_stream(
        payload: QueryRequest,
        store: DocumentStore = Depends(get_store),
        service: QueryService = Depends(get_query_service),
        _auth: None = Depends(require_api_key),
        _rl: None = Depends(rate_limiter.__call__),
    ) -> StreamingResponse:
        stream = service.stream_reply(_question(payload), _history(payload), store.list())

        async def iter_sse() -> AsyncIterator[str]:
            # Initial heartbeat to keep idle proxies open
            yield ": heartbeat\n\n"
            try:
                async for fragment in stream:
                    yield f"data: {json.dumps(fragment)}\n\n"
            except GenerationError:
                yield f"event: error\ndata: {json.dumps(SERVICE_UNAVAILABLE_NOTICE)}\n\n"
                return
            finally:
                await stream.aclose()
            yield f"event: sources\ndata: {json.dumps(list(stream.sources))}\n\n"

        return StreamingResponse(iter_sse(), media_type="text/event-stream")

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        from docmind import __version__

        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.head("/healthz")
    async def healthcheck_head() -> Response:
        return Response(status_code=status.HTTP_200_OK)

    @app.get("/livez")
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    @app.get("/healthz/ready")
    async def readiness(store: DocumentStore = Depends(get_store)) -> dict[str, object]:
        return {"status": "ready", "documents": len(store)}

    return app


def _question(payload: QueryRequest) -> str:
    if payload.action is not None:
        return WORKSPACE_ACTIONS[payload.action]
    return payload.question or ""


def _history(payload: QueryRequest) -> list[Message]:
    return [
        Message(message_id=f"history-{index}", role=item.role, text=item.text)
        for index, item in enumerate(payload.history)
    ]


def _summarize(document: Document) -> DocumentSummary:
    return DocumentSummary(
        document_id=document.document_id,
        name=document.name,
        media_type=document.media_type,
        characters=len(document.content),
        created_at=document.created_at,
    )


def _build_upload_response(report: IngestionReport) -> DocumentUploadResponse:
    return DocumentUploadResponse(
        documents=[_summarize(document) for document in report.documents],
        failures=[IngestionFailureModel(name=f.name, reason=f.reason) for f in report.failures],
    )


app = create_app()
