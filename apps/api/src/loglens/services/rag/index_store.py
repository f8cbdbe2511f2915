from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
import json
import os
from pathlib import Path
from threading import Lock

from loglens.services.rag.types import IndexChunk, QueryHit
from loglens.services.rag.vector_index import IndexWriteError, cosine, rank_hits

INDEX_FORMAT_VERSION = "r2"


class JsonVectorIndex:
    """Semantic index persisted as one ``index.json`` file, rewritten atomically."""

    def __init__(self, output_dir: Path) -> None:
        self._output_dir = output_dir
        self._index_file = output_dir / "index.json"
        self._lock = Lock()

    @property
    def index_file(self) -> Path:
        return self._index_file

    def _load_records(self) -> dict[str, dict[str, object]]:
        if not self._index_file.exists():
            return {}

        payload = json.loads(self._index_file.read_text(encoding="utf-8"))
        records = payload.get("records")
        if not isinstance(records, list):
            raise ValueError(f"Invalid index payload in {self._index_file}: 'records' must be a list")

        return {
            str(record["key"]): record
            for record in records
            if isinstance(record, dict) and isinstance(record.get("key"), str)
        }

    def _persist(self, records: dict[str, dict[str, object]]) -> None:
        self._output_dir.mkdir(parents=True, exist_ok=True)
        payload = {
            "version": INDEX_FORMAT_VERSION,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "chunk_count": len(records),
            "records": [records[key] for key in sorted(records)],
        }

        tmp_file = self._index_file.with_suffix(".json.tmp")
        try:
            tmp_file.write_text(
                json.dumps(payload, ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
            os.replace(tmp_file, self._index_file)
        finally:
            if tmp_file.exists():
                tmp_file.unlink()

    def upsert(self, chunks: Sequence[IndexChunk]) -> None:
        if not chunks:
            return

        with self._lock:
            try:
                records = self._load_records()
                for chunk in chunks:
                    records[chunk.key] = {
                        "key": chunk.key,
                        "source_file_name": chunk.source_file_name,
                        "page_number": chunk.page_number,
                        "text": chunk.text,
                        "embedding": list(chunk.vector),
                    }
                self._persist(records)
            except (OSError, ValueError) as exc:
                raise IndexWriteError(f"json index upsert failed: {exc}") from exc

    def delete(self, keys: Sequence[str]) -> None:
        if not keys:
            return

        with self._lock:
            try:
                records = self._load_records()
                removed = [records.pop(key) for key in keys if key in records]
                if removed:
                    self._persist(records)
            except (OSError, ValueError) as exc:
                raise IndexWriteError(f"json index delete failed: {exc}") from exc

    def keys(self) -> set[str]:
        with self._lock:
            return set(self._load_records())

    def search(
        self,
        query_vector: list[float],
        top_k: int,
        *,
        source_file_name: str | None = None,
    ) -> list[QueryHit]:
        if not self._index_file.exists():
            raise FileNotFoundError(
                f"RAG index file not found: {self._index_file}. Run `rag-sync` first."
            )

        with self._lock:
            records = self._load_records()

        hits: list[QueryHit] = []
        for record in records.values():
            embedding = record.get("embedding")
            key = record.get("key")
            file_name = record.get("source_file_name")
            text = record.get("text")
            if (
                not isinstance(embedding, list)
                or not isinstance(key, str)
                or not isinstance(file_name, str)
                or not isinstance(text, str)
            ):
                continue
            if source_file_name is not None and file_name != source_file_name:
                continue
            hits.append(
                QueryHit(
                    chunk_id=key,
                    source_path=file_name,
                    page_number=int(record.get("page_number") or 0),
                    text=text,
                    score=cosine(query_vector, [float(value) for value in embedding]),
                )
            )

        return rank_hits(hits, top_k)
