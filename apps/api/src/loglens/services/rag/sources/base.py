from __future__ import annotations

from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from loglens.services.rag.embedding_client import EmbeddingClient, EmbeddingClientError
from loglens.services.rag.types import Document, IndexChunk, LedgerDocument


class SourceEnumerationError(RuntimeError):
    pass


class MalformedContentError(ValueError):
    pass


class ContentSource(Protocol):
    @property
    def source_id(self) -> str: ...

    def find_new_or_modified(
        self, existing: Mapping[str, LedgerDocument]
    ) -> list[Document]: ...

    def find_deleted(self, existing: Mapping[str, LedgerDocument]) -> list[LedgerDocument]: ...

    def materialize(
        self, embedding_client: EmbeddingClient, document_id: str
    ) -> list[IndexChunk]: ...


def file_version(path: Path) -> str:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).isoformat()


def list_directory_files(source_dir: Path, pattern: str) -> list[Path]:
    if not source_dir.exists():
        raise SourceEnumerationError(f"Source directory not found: {source_dir}")
    if not source_dir.is_dir():
        raise SourceEnumerationError(f"Source path is not a directory: {source_dir}")

    try:
        return sorted(path for path in source_dir.glob(pattern) if path.is_file())
    except OSError as exc:
        raise SourceEnumerationError(f"Failed to list {source_dir}: {exc}") from exc


def diff_files(
    source_id: str,
    files: list[Path],
    existing: Mapping[str, LedgerDocument],
) -> list[Document]:
    documents: list[Document] = []
    for path in files:
        version = file_version(path)
        known = existing.get(path.name)
        if known is None or known.version != version:
            documents.append(Document(id=path.name, source_id=source_id, version=version))
    return documents


def deleted_files(
    files: list[Path],
    existing: Mapping[str, LedgerDocument],
) -> list[LedgerDocument]:
    present = {path.name for path in files}
    return [document for document_id, document in existing.items() if document_id not in present]


def embed_each(
    embedding_client: EmbeddingClient,
    texts: list[str],
    *,
    max_concurrency: int = 1,
) -> list[list[float]]:
    """Embed ``texts`` with one call per text, at most ``max_concurrency`` in flight.

    The first failure is raised once every submitted call has settled.
    """

    def _embed_one(text: str) -> list[float]:
        vectors = embedding_client.embed_texts([text])
        if len(vectors) != 1 or not vectors[0]:
            raise EmbeddingClientError("embedding client returned no vector for chunk")
        return vectors[0]

    if max_concurrency <= 1 or len(texts) <= 1:
        return [_embed_one(text) for text in texts]

    with ThreadPoolExecutor(max_workers=max_concurrency) as executor:
        futures = [executor.submit(_embed_one, text) for text in texts]
        return [future.result() for future in futures]
