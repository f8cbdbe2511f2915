from loglens.services.rag.ingest import ingest_source, ingest_sources
from loglens.services.rag.ledger import IngestionLedger, LedgerError
from loglens.services.rag.query import search_index
from loglens.services.rag.types import (
    Document,
    IndexChunk,
    IngestionSummary,
    LedgerDocument,
    QueryHit,
    SourceIngestionSummary,
)

__all__ = [
    "Document",
    "IndexChunk",
    "IngestionLedger",
    "IngestionSummary",
    "LedgerDocument",
    "LedgerError",
    "QueryHit",
    "SourceIngestionSummary",
    "ingest_source",
    "ingest_sources",
    "search_index",
]
