from dataclasses import dataclass, field


@dataclass(frozen=True)
class Document:
    id: str
    source_id: str
    version: str


@dataclass(frozen=True)
class LedgerDocument:
    id: str
    source_id: str
    version: str
    record_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class IndexChunk:
    key: str
    source_file_name: str
    page_number: int
    text: str
    vector: list[float]


@dataclass(frozen=True)
class QueryHit:
    chunk_id: str
    source_path: str
    page_number: int
    text: str
    score: float


@dataclass
class SourceIngestionSummary:
    source_id: str
    added: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: int = 0
    chunks_written: int = 0
    error: str | None = None


@dataclass
class IngestionSummary:
    sources: list[SourceIngestionSummary] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def document_count(self) -> int:
        return sum(source.added + source.updated for source in self.sources)

    @property
    def chunk_count(self) -> int:
        return sum(source.chunks_written for source in self.sources)

    def as_dict(self) -> dict[str, object]:
        return {
            "documents": self.document_count,
            "chunks": self.chunk_count,
            "duration_ms": self.duration_ms,
            "sources": [
                {
                    "source_id": source.source_id,
                    "added": source.added,
                    "updated": source.updated,
                    "deleted": source.deleted,
                    "skipped": source.skipped,
                    "failed": source.failed,
                    "chunks_written": source.chunks_written,
                    "error": source.error,
                }
                for source in self.sources
            ],
        }
