from __future__ import annotations

from collections.abc import Mapping
import logging
from pathlib import Path

import fitz  # PyMuPDF

from loglens.services.rag.chunker import chunk_text
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


def extract_pages(path: Path) -> list[tuple[int, str]]:
    """Return ``(page_number, text)`` for every page, 1-based."""
    try:
        with fitz.open(path) as pdf:
            return [
                (page_index + 1, page.get_text())
                for page_index, page in enumerate(pdf)
            ]
    except (RuntimeError, ValueError) as exc:
        raise MalformedContentError(f"{path.name} could not be parsed as PDF: {exc}") from exc


class PdfDirectorySource:
    """PDF files, chunked per page.

    Chunk keys are ``<file name>/<page>_<n>``; a file name never holds ``/``,
    so they cannot clash with the ``<stem>_<page>`` keys of JSON log files.
    """

    def __init__(
        self,
        source_dir: Path,
        *,
        chunk_size: int = 500,
        chunk_overlap: int = 50,
        max_concurrency: int = 1,
    ) -> None:
        if chunk_overlap >= chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")

        self._source_dir = source_dir
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._max_concurrency = max_concurrency

    @property
    def source_id(self) -> str:
        return f"{type(self).__name__}:{self._source_dir}"

    def _files(self) -> list[Path]:
        return list_directory_files(self._source_dir, "*.pdf")

    def find_new_or_modified(self, existing: Mapping[str, LedgerDocument]) -> list[Document]:
        return diff_files(self.source_id, self._files(), existing)

    def find_deleted(self, existing: Mapping[str, LedgerDocument]) -> list[LedgerDocument]:
        return deleted_files(self._files(), existing)

    def materialize(self, embedding_client: EmbeddingClient, document_id: str) -> list[IndexChunk]:
        pending: list[tuple[str, int, str]] = []

        for page_number, page_text in extract_pages(self._source_dir / document_id):
            paragraphs = chunk_text(
                page_text,
                chunk_size=self._chunk_size,
                chunk_overlap=self._chunk_overlap,
            )
            for index, text in enumerate(paragraphs):
                pending.append((f"{document_id}/{page_number}_{index}", page_number, text))

        if not pending:
            logger.warning("pdf %s has no extractable text", document_id)
            return []

        vectors = embed_each(
            embedding_client,
            [text for _, _, text in pending],
            max_concurrency=self._max_concurrency,
        )
        return [
            IndexChunk(
                key=key,
                source_file_name=document_id,
                page_number=page_number,
                text=text,
                vector=vector,
            )
            for (key, page_number, text), vector in zip(pending, vectors)
        ]
