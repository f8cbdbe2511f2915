from __future__ import annotations

from collections.abc import Sequence
import logging
from time import perf_counter

from loglens.services.rag.embedding_client import EmbeddingClient
from loglens.services.rag.ledger import IngestionLedger, LedgerError
from loglens.services.rag.sources.base import ContentSource, MalformedContentError
from loglens.services.rag.types import (
    Document,
    IngestionSummary,
    LedgerDocument,
    SourceIngestionSummary,
)
from loglens.services.rag.vector_index import SemanticIndex

logger = logging.getLogger(__name__)


def _purge_deleted(
    source: ContentSource,
    deleted: Sequence[LedgerDocument],
    *,
    ledger: IngestionLedger,
    index: SemanticIndex,
    summary: SourceIngestionSummary,
) -> None:
    for document in deleted:
        try:
            index.delete(list(document.record_ids))
        except Exception as exc:
            # ledger row stays so the purge is retried on the next pass
            summary.failed += 1
            logger.warning(
                "index delete failed source=%s document=%s error=%s",
                source.source_id,
                document.id,
                exc,
            )
            continue

        ledger.delete_document(document.id, document.source_id)
        summary.deleted += 1
        logger.info(
            "removed document source=%s document=%s records=%d",
            source.source_id,
            document.id,
            len(document.record_ids),
        )


def _reindex_document(
    source: ContentSource,
    document: Document,
    *,
    previous: LedgerDocument | None,
    ledger: IngestionLedger,
    index: SemanticIndex,
    embedding_client: EmbeddingClient,
    summary: SourceIngestionSummary,
) -> None:
    try:
        chunks = source.materialize(embedding_client, document.id)
    except MalformedContentError as exc:
        summary.skipped += 1
        logger.warning(
            "skipping malformed document source=%s document=%s error=%s",
            source.source_id,
            document.id,
            exc,
        )
        return
    except Exception as exc:
        summary.failed += 1
        logger.error(
            "materialize failed source=%s document=%s error=%s",
            source.source_id,
            document.id,
            exc,
        )
        return

    try:
        if previous is not None and previous.record_ids:
            index.delete(list(previous.record_ids))
        index.upsert(chunks)
    except Exception as exc:
        summary.failed += 1
        logger.error(
            "index write failed source=%s document=%s error=%s",
            source.source_id,
            document.id,
            exc,
        )
        return

    ledger.replace_document(document, [chunk.key for chunk in chunks])
    summary.chunks_written += len(chunks)
    if previous is None:
        summary.added += 1
    else:
        summary.updated += 1
    logger.info(
        "indexed document source=%s document=%s version=%s chunks=%d",
        source.source_id,
        document.id,
        document.version,
        len(chunks),
    )


def ingest_source(
    source: ContentSource,
    *,
    ledger: IngestionLedger,
    index: SemanticIndex,
    embedding_client: EmbeddingClient,
) -> SourceIngestionSummary:
    """Run one sync pass for ``source``: purge deletions, then re-index changes.

    Ledger failures propagate. Any other failure raised while enumerating the
    source aborts only this source and is recorded on the returned summary.
    """
    source_id = source.source_id
    summary = SourceIngestionSummary(source_id=source_id)

    existing = ledger.list_documents(source_id)
    try:
        deleted = source.find_deleted(existing)
    except LedgerError:
        raise
    except Exception as exc:
        summary.error = f"find_deleted failed: {exc}"
        logger.error("source enumeration failed source=%s error=%s", source_id, exc)
        return summary

    _purge_deleted(source, deleted, ledger=ledger, index=index, summary=summary)

    if deleted:
        existing = ledger.list_documents(source_id)
    try:
        changed = source.find_new_or_modified(existing)
    except LedgerError:
        raise
    except Exception as exc:
        summary.error = f"find_new_or_modified failed: {exc}"
        logger.error("source enumeration failed source=%s error=%s", source_id, exc)
        return summary

    for document in changed:
        _reindex_document(
            source,
            document,
            previous=existing.get(document.id),
            ledger=ledger,
            index=index,
            embedding_client=embedding_client,
            summary=summary,
        )

    logger.info(
        "sync finished source=%s added=%d updated=%d deleted=%d skipped=%d failed=%d",
        source_id,
        summary.added,
        summary.updated,
        summary.deleted,
        summary.skipped,
        summary.failed,
    )
    return summary


def ingest_sources(
    sources: Sequence[ContentSource],
    *,
    ledger: IngestionLedger,
    index: SemanticIndex,
    embedding_client: EmbeddingClient,
) -> IngestionSummary:
    start = perf_counter()
    summary = IngestionSummary()

    for source in sources:
        summary.sources.append(
            ingest_source(
                source,
                ledger=ledger,
                index=index,
                embedding_client=embedding_client,
            )
        )

    summary.duration_ms = int((perf_counter() - start) * 1000)
    return summary
