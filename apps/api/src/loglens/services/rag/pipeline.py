from __future__ import annotations

from collections.abc import Sequence
from datetime import timedelta
import logging
from pathlib import Path
from threading import Lock

from loglens.config import Settings, get_settings
from loglens.db import get_engine
from loglens.services.loki.client import LokiClient
from loglens.services.loki.log_source import LokiLogSource
from loglens.services.loki.sample_data import SampleLogGenerator
from loglens.services.rag.embedding_client import EmbeddingClient, create_embedding_client
from loglens.services.rag.ingest import ingest_sources
from loglens.services.rag.ledger import IngestionLedger
from loglens.services.rag.sources import ContentSource, JsonLogDirectorySource, PdfDirectorySource
from loglens.services.rag.types import IngestionSummary
from loglens.services.rag.vector_index import SemanticIndex, create_semantic_index

logger = logging.getLogger(__name__)

_pass_lock = Lock()


class SyncAlreadyRunningError(RuntimeError):
    pass


def create_loki_client(settings: Settings) -> LokiClient:
    return LokiClient(
        endpoint=settings.loki_endpoint,
        username=settings.loki_username,
        password=settings.loki_password,
        timeout_seconds=settings.loki_timeout_seconds,
        use_sample_data=settings.loki_use_sample_data,
        sample_generator=SampleLogGenerator(seed=settings.loki_sample_seed),
    )


def build_sources(settings: Settings, *, loki_client: LokiClient | None = None) -> list[ContentSource]:
    """Registered sources in processing order: PDFs, JSON logs, then Loki when enabled."""
    sources: list[ContentSource] = [
        PdfDirectorySource(
            Path(settings.ingest_pdf_dir).resolve(),
            chunk_size=settings.rag_chunk_size,
            chunk_overlap=settings.rag_chunk_overlap,
            max_concurrency=settings.embed_max_concurrency,
        ),
        JsonLogDirectorySource(
            Path(settings.ingest_logs_dir).resolve(),
            max_concurrency=settings.embed_max_concurrency,
        ),
    ]

    if settings.loki_enabled:
        sources.append(
            LokiLogSource(
                loki_client or create_loki_client(settings),
                query=settings.loki_query,
                lookback=timedelta(hours=settings.loki_lookback_hours),
                limit=settings.loki_query_limit,
                max_concurrency=settings.embed_max_concurrency,
            )
        )

    return sources


def run_sync(
    *,
    settings: Settings | None = None,
    sources: Sequence[ContentSource] | None = None,
    ledger: IngestionLedger | None = None,
    index: SemanticIndex | None = None,
    embedding_client: EmbeddingClient | None = None,
    blocking: bool = True,
) -> IngestionSummary:
    """Run one ingestion pass over every registered source.

    Passes never overlap; with ``blocking=False`` a concurrent call fails fast
    with :class:`SyncAlreadyRunningError` instead of waiting.
    """
    resolved_settings = settings or get_settings()

    if not _pass_lock.acquire(blocking=blocking):
        raise SyncAlreadyRunningError("an ingestion pass is already running")

    try:
        summary = ingest_sources(
            sources if sources is not None else build_sources(resolved_settings),
            ledger=ledger or IngestionLedger(get_engine()),
            index=index or create_semantic_index(resolved_settings),
            embedding_client=embedding_client or create_embedding_client(resolved_settings),
        )
    finally:
        _pass_lock.release()

    logger.info(
        "ingestion pass completed documents=%d chunks=%d duration_ms=%d",
        summary.document_count,
        summary.chunk_count,
        summary.duration_ms,
    )
    return summary
