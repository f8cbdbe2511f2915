from __future__ import annotations

from array import array
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
import sqlite3

from loglens.services.rag.types import IndexChunk, QueryHit
from loglens.services.rag.vector_index import IndexWriteError, cosine, rank_hits


@dataclass(frozen=True)
class StoredChunk:
    key: str
    source_file_name: str
    page_number: int
    text: str
    embedding: list[float]


def _encode_embedding(values: list[float]) -> bytes:
    vector = array("f", values)
    return vector.tobytes()


def _decode_embedding(blob: bytes) -> list[float]:
    vector = array("f")
    vector.frombytes(blob)
    return vector.tolist()


def _ensure_schema(connection: sqlite3.Connection) -> None:
    connection.executescript(
        """
        CREATE TABLE IF NOT EXISTS chunks (
            key TEXT PRIMARY KEY,
            source_file_name TEXT NOT NULL,
            page_number INTEGER NOT NULL,
            text TEXT NOT NULL,
            token_count INTEGER,
            embedding BLOB NOT NULL,
            embedding_dim INTEGER NOT NULL,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE INDEX IF NOT EXISTS idx_chunks_source_file_name ON chunks(source_file_name);
        """
    )


class SqliteVectorIndex:
    """Semantic index stored in a single sqlite file, one row per chunk key."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(self._db_path, timeout=30)
        _ensure_schema(connection)
        return connection

    def upsert(self, chunks: Sequence[IndexChunk]) -> None:
        if not chunks:
            return

        rows = []
        for chunk in chunks:
            if not chunk.vector:
                raise IndexWriteError(f"chunk {chunk.key} has an empty embedding vector")
            rows.append(
                (
                    chunk.key,
                    chunk.source_file_name,
                    chunk.page_number,
                    chunk.text,
                    len(chunk.text.split()),
                    sqlite3.Binary(_encode_embedding(chunk.vector)),
                    len(chunk.vector),
                )
            )

        try:
            with self._connect() as connection:
                connection.executemany(
                    """
                    INSERT INTO chunks (key, source_file_name, page_number, text, token_count, embedding, embedding_dim)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE
                    SET source_file_name = excluded.source_file_name,
                        page_number = excluded.page_number,
                        text = excluded.text,
                        token_count = excluded.token_count,
                        embedding = excluded.embedding,
                        embedding_dim = excluded.embedding_dim,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    rows,
                )
        except sqlite3.Error as exc:
            raise IndexWriteError(f"sqlite index upsert failed: {exc}") from exc

    def delete(self, keys: Sequence[str]) -> None:
        if not keys:
            return

        try:
            with self._connect() as connection:
                connection.executemany(
                    "DELETE FROM chunks WHERE key = ?",
                    [(key,) for key in keys],
                )
        except sqlite3.Error as exc:
            raise IndexWriteError(f"sqlite index delete failed: {exc}") from exc

    def keys(self) -> set[str]:
        if not self._db_path.exists():
            return set()

        with self._connect() as connection:
            rows = connection.execute("SELECT key FROM chunks").fetchall()
        return {row[0] for row in rows}

    def load_chunks(self, *, source_file_name: str | None = None) -> list[StoredChunk]:
        if not self._db_path.exists():
            raise FileNotFoundError(
                f"RAG sqlite index file not found: {self._db_path}. Run `rag-sync` first."
            )

        query = "SELECT key, source_file_name, page_number, text, embedding, embedding_dim FROM chunks"
        params: tuple[str, ...] = ()
        if source_file_name is not None:
            query += " WHERE source_file_name = ?"
            params = (source_file_name,)
        query += " ORDER BY key"

        with self._connect() as connection:
            rows = connection.execute(query, params).fetchall()

        chunks: list[StoredChunk] = []
        for key, file_name, page_number, text, embedding_blob, embedding_dim in rows:
            if (
                not isinstance(key, str)
                or not isinstance(file_name, str)
                or not isinstance(text, str)
                or not isinstance(embedding_blob, bytes)
                or not isinstance(embedding_dim, int)
            ):
                continue

            embedding = _decode_embedding(embedding_blob)
            if len(embedding) != embedding_dim:
                continue

            chunks.append(
                StoredChunk(
                    key=key,
                    source_file_name=file_name,
                    page_number=int(page_number),
                    text=text,
                    embedding=embedding,
                )
            )
        return chunks

    def search(
        self,
        query_vector: list[float],
        top_k: int,
        *,
        source_file_name: str | None = None,
    ) -> list[QueryHit]:
        chunks = self.load_chunks(source_file_name=source_file_name)
        hits = [
            QueryHit(
                chunk_id=chunk.key,
                source_path=chunk.source_file_name,
                page_number=chunk.page_number,
                text=chunk.text,
                score=cosine(query_vector, chunk.embedding),
            )
            for chunk in chunks
        ]
        return rank_hits(hits, top_k)
