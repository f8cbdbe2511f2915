from __future__ import annotations

from collections.abc import Mapping
import json
import logging
from pathlib import Path

from loglens.services.rag.chunker import chunk_log_entries
from loglens.services.rag.embedding_client import EmbeddingClient
from loglens.services.rag.sources.base import (
    MalformedContentError,
    deleted_files,
    diff_files,
    embed_each,
    list_directory_files,
)
from loglens.services.rag.types import Document, IndexChunk, LedgerDocument

logger = logging.getLogger(__name__)


class JsonLogDirectorySource:
    """Structured JSON log files (one top-level array of entries per file).

    Versions are file modification times, so touching a file without editing it
    still triggers a re-index.
    """

    def __init__(self, source_dir: Path, *, max_concurrency: int = 1) -> None:
        self._source_dir = source_dir
        self._max_concurrency = max_concurrency

    @property
    def source_id(self) -> str:
        return f"{type(self).__name__}:{self._source_dir}"

    def _files(self) -> list[Path]:
        return list_directory_files(self._source_dir, "*.json")

    def find_new_or_modified(self, existing: Mapping[str, LedgerDocument]) -> list[Document]:
        return diff_files(self.source_id, self._files(), existing)

    def find_deleted(self, existing: Mapping[str, LedgerDocument]) -> list[LedgerDocument]:
        return deleted_files(self._files(), existing)

    def read_entries(self, document_id: str) -> list[str]:
        path = self._source_dir / document_id
        try:
            raw = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedContentError(f"{document_id} is not valid UTF-8: {exc}") from exc

        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedContentError(f"{document_id} is not valid JSON: {exc}") from exc

        if entries is None:
            return []
        if not isinstance(entries, list):
            raise MalformedContentError(
                f"{document_id} must contain a JSON array of log entries, "
                f"got {type(entries).__name__}"
            )

        return [
            entry if isinstance(entry, str) else json.dumps(entry, ensure_ascii=False, separators=(",", ":"))
            for entry in entries
        ]

    def materialize(self, embedding_client: EmbeddingClient, document_id: str) -> list[IndexChunk]:
        entries = self.read_entries(document_id)
        pages = list(chunk_log_entries(entries))
        if not pages:
            logger.info("json log %s has no entries", document_id)
            return []

        vectors = embed_each(
            embedding_client,
            [text for _, text in pages],
            max_concurrency=self._max_concurrency,
        )
        stem = Path(document_id).stem
        return [
            IndexChunk(
                key=f"{stem}_{page_number}",
                source_file_name=document_id,
                page_number=page_number,
                text=text,
                vector=vector,
            )
            for (page_number, text), vector in zip(pages, vectors)
        ]
