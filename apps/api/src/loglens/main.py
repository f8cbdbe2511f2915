from datetime import datetime
import logging
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from loglens.config import get_settings
from loglens.db import init_db
from loglens.llm import LLMClient, LLMClientError, OllamaChatClient
from loglens.logging_config import configure_logging
from loglens.scheduler import PeriodicSync
from loglens.services.loki import LogAnalysisResult, LogAnalysisService, LokiClient, LokiClientError
from loglens.services.rag import LedgerError, search_index
from loglens.services.rag.embedding_client import EmbeddingClient, create_embedding_client
from loglens.services.rag.pipeline import SyncAlreadyRunningError, create_loki_client, run_sync
from loglens.services.rag.types import QueryHit
from loglens.services.rag.vector_index import SemanticIndex, create_semantic_index

logger = logging.getLogger(__name__)

app = FastAPI(title="loglens API", version="0.1.0")
app.state.periodic_sync = None


class AskRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    question: str = Field(min_length=1)
    k: int = Field(default=3, ge=1, le=20)
    file: str | None = None


class LogAnalysisRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    query: str = Field(min_length=1)
    prompt: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    limit: int = Field(default=100, ge=1, le=5000)


@app.on_event("startup")
def startup() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    init_db()

    if settings.ingest_on_startup:
        try:
            run_sync(settings=settings)
        except LedgerError:
            logger.exception("startup ingestion aborted by ledger failure")

    if settings.ingest_interval_seconds > 0:
        periodic_sync = PeriodicSync(settings.ingest_interval_seconds)
        periodic_sync.start()
        app.state.periodic_sync = periodic_sync


@app.on_event("shutdown")
def shutdown() -> None:
    periodic_sync = app.state.periodic_sync
    if periodic_sync is not None:
        periodic_sync.stop(timeout=5)
        app.state.periodic_sync = None


def get_llm_client() -> LLMClient:
    settings = get_settings()
    return OllamaChatClient(
        base_url=settings.ollama_base_url,
        default_model=settings.ollama_model,
        fallback_model=settings.ollama_fallback_model,
        timeout_seconds=settings.ollama_timeout_seconds,
    )


def get_embedding_client() -> EmbeddingClient:
    return create_embedding_client(get_settings())


def get_semantic_index() -> SemanticIndex:
    return create_semantic_index(get_settings())


def get_loki_client() -> LokiClient:
    return create_loki_client(get_settings())


def _hit_payload(hit: QueryHit) -> dict[str, object]:
    return {
        "chunk_id": hit.chunk_id,
        "source_path": hit.source_path,
        "page_number": hit.page_number,
        "score": round(hit.score, 6),
        "text": hit.text,
    }


def _analysis_payload(result: LogAnalysisResult) -> dict[str, Any]:
    return {
        "success": result.success,
        "analysis": result.analysis,
        "error_message": result.error_message,
        "log_sample_count": result.log_sample_count,
        "time_range": result.time_range,
        "query": result.query,
        "model": result.model,
    }


def _search(
    *,
    index: SemanticIndex,
    embedding_client: EmbeddingClient,
    query_text: str,
    top_k: int,
    source_file_name: str | None,
) -> list[QueryHit]:
    try:
        return search_index(
            index=index,
            query_text=query_text,
            top_k=top_k,
            embedding_client=embedding_client,
            source_file_name=source_file_name,
        )
    except FileNotFoundError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/rag/sync")
def rag_sync() -> dict[str, Any]:
    try:
        summary = run_sync(blocking=False)
    except SyncAlreadyRunningError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except LedgerError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return summary.as_dict()


@app.get("/rag/search")
def rag_search(
    q: str,
    embedding_client: Annotated[EmbeddingClient, Depends(get_embedding_client)],
    index: Annotated[SemanticIndex, Depends(get_semantic_index)],
    k: int = 3,
    file: str | None = None,
) -> list[dict[str, object]]:
    if not q.strip():
        raise HTTPException(status_code=400, detail="q must not be empty")

    hits = _search(
        index=index,
        embedding_client=embedding_client,
        query_text=q,
        top_k=max(1, min(k, 20)),
        source_file_name=file,
    )
    return [_hit_payload(hit) for hit in hits]


@app.post("/ask")
def ask(
    request: AskRequest,
    llm_client: Annotated[LLMClient, Depends(get_llm_client)],
    embedding_client: Annotated[EmbeddingClient, Depends(get_embedding_client)],
    index: Annotated[SemanticIndex, Depends(get_semantic_index)],
) -> dict[str, Any]:
    question = request.question.strip()
    if not question:
        raise HTTPException(status_code=400, detail="question must not be empty")

    settings = get_settings()
    hits = _search(
        index=index,
        embedding_client=embedding_client,
        query_text=question,
        top_k=request.k,
        source_file_name=request.file,
    )

    context = "\n\n".join(
        f"[{hit.source_path}#{hit.chunk_id}]\n{hit.text}"
        for hit in hits
    ) or "No relevant context found in local retrieval index."

    try:
        chat_result = llm_client.generate_answer(question=question, context=context)
    except LLMClientError as exc:
        raise HTTPException(status_code=502, detail=f"LLM request failed: {exc}") from exc

    return {
        "answer": chat_result.answer,
        "sources": [_hit_payload(hit) for hit in hits],
        "meta": {
            "provider": "ollama",
            "model": chat_result.model,
            "used_fallback": chat_result.used_fallback,
            "retrieval_k": request.k,
            "retrieved_count": len(hits),
            "ollama_base_url": settings.ollama_base_url,
        },
    }


def _run_analysis(
    request: LogAnalysisRequest,
    service: LogAnalysisService,
    *,
    mode: str,
) -> dict[str, Any]:
    try:
        if mode == "anomalies":
            result = service.detect_anomalies(
                request.query, start=request.start, end=request.end, limit=request.limit
            )
        elif mode == "summary":
            result = service.summarize(
                request.query, start=request.start, end=request.end, limit=request.limit
            )
        else:
            if not request.prompt or not request.prompt.strip():
                raise HTTPException(status_code=422, detail="prompt is required for /logs/analyze")
            result = service.analyze(
                request.query,
                request.prompt.strip(),
                start=request.start,
                end=request.end,
                limit=request.limit,
            )
    except LokiClientError as exc:
        raise HTTPException(status_code=502, detail=f"Log query failed: {exc}") from exc
    except LLMClientError as exc:
        raise HTTPException(status_code=502, detail=f"LLM request failed: {exc}") from exc

    return _analysis_payload(result)


def get_log_analysis_service(
    loki_client: Annotated[LokiClient, Depends(get_loki_client)],
    llm_client: Annotated[LLMClient, Depends(get_llm_client)],
) -> LogAnalysisService:
    return LogAnalysisService(loki_client, llm_client)


@app.post("/logs/analyze")
def logs_analyze(
    request: LogAnalysisRequest,
    service: Annotated[LogAnalysisService, Depends(get_log_analysis_service)],
) -> dict[str, Any]:
    return _run_analysis(request, service, mode="analyze")


@app.post("/logs/anomalies")
def logs_anomalies(
    request: LogAnalysisRequest,
    service: Annotated[LogAnalysisService, Depends(get_log_analysis_service)],
) -> dict[str, Any]:
    return _run_analysis(request, service, mode="anomalies")


@app.post("/logs/summary")
def logs_summary(
    request: LogAnalysisRequest,
    service: Annotated[LogAnalysisService, Depends(get_log_analysis_service)],
) -> dict[str, Any]:
    return _run_analysis(request, service, mode="summary")


@app.get("/logs/labels")
def logs_labels(
    loki_client: Annotated[LokiClient, Depends(get_loki_client)],
) -> list[str]:
    try:
        return loki_client.labels().data
    except LokiClientError as exc:
        raise HTTPException(status_code=502, detail=f"Log query failed: {exc}") from exc


@app.get("/logs/labels/{name}/values")
def logs_label_values(
    name: str,
    loki_client: Annotated[LokiClient, Depends(get_loki_client)],
    limit: int = Query(default=100, ge=1, le=1000),
) -> list[str]:
    try:
        return loki_client.label_values(name).data[:limit]
    except LokiClientError as exc:
        raise HTTPException(status_code=502, detail=f"Log query failed: {exc}") from exc


def run() -> None:
    import uvicorn

    uvicorn.run("loglens.main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    run()
