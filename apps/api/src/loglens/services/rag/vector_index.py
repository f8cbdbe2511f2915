from __future__ import annotations

from collections.abc import Sequence
import math
from pathlib import Path
from typing import Protocol

from loglens.config import Settings
from loglens.services.rag.types import IndexChunk, QueryHit


class IndexWriteError(RuntimeError):
    pass


class SemanticIndex(Protocol):
    def upsert(self, chunks: Sequence[IndexChunk]) -> None: ...

    def delete(self, keys: Sequence[str]) -> None: ...

    def search(
        self,
        query_vector: list[float],
        top_k: int,
        *,
        source_file_name: str | None = None,
    ) -> list[QueryHit]: ...

    def keys(self) -> set[str]: ...


def cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def rank_hits(hits: list[QueryHit], top_k: int) -> list[QueryHit]:
    hits.sort(key=lambda hit: hit.score, reverse=True)
    return hits[: max(1, top_k)]


def create_semantic_index(settings: Settings) -> SemanticIndex:
    # local imports keep the backends' modules free of a cycle through this one
    if settings.rag_index_backend == "json":
        from loglens.services.rag.index_store import JsonVectorIndex

        return JsonVectorIndex(Path(settings.rag_index_dir))
    if settings.rag_index_backend == "sqlite":
        from loglens.services.rag.sqlite_store import SqliteVectorIndex

        return SqliteVectorIndex(Path(settings.rag_db_path))

    raise ValueError(f"Unsupported RAG_INDEX_BACKEND: {settings.rag_index_backend}")
