from pathlib import Path
import sqlite3

import pytest

from loglens.services.rag.index_store import JsonVectorIndex
from loglens.services.rag.sqlite_store import SqliteVectorIndex
from loglens.services.rag.types import IndexChunk


def _chunk(key: str, file_name: str, vector: list[float], *, page: int = 1) -> IndexChunk:
    return IndexChunk(
        key=key,
        source_file_name=file_name,
        page_number=page,
        text=f"text for {key}",
        vector=vector,
    )


def test_sqlite_index_roundtrip_and_schema(sqlite_index: SqliteVectorIndex) -> None:
    sqlite_index.upsert(
        [
            _chunk("manual.pdf/1_0", "manual.pdf", [1.0, 0.0, 0.0]),
            _chunk("manual.pdf/2_0", "manual.pdf", [0.0, 1.0, 0.0], page=2),
            _chunk("app_1", "app.json", [0.0, 0.0, 1.0]),
        ]
    )

    assert sqlite_index.db_path.exists()
    with sqlite3.connect(sqlite_index.db_path) as connection:
        chunk_columns = {
            row[1] for row in connection.execute("PRAGMA table_info(chunks)").fetchall()
        }
    assert {
        "key",
        "source_file_name",
        "page_number",
        "text",
        "embedding",
        "embedding_dim",
        "updated_at",
    }.issubset(chunk_columns)

    assert sqlite_index.keys() == {"manual.pdf/1_0", "manual.pdf/2_0", "app_1"}

    loaded = sqlite_index.load_chunks(source_file_name="manual.pdf")
    assert [chunk.key for chunk in loaded] == ["manual.pdf/1_0", "manual.pdf/2_0"]
    assert loaded[1].page_number == 2
    assert loaded[1].embedding == pytest.approx([0.0, 1.0, 0.0])


def test_sqlite_index_upsert_overwrites_and_delete_removes(
    sqlite_index: SqliteVectorIndex,
) -> None:
    sqlite_index.upsert([_chunk("app_1", "app.json", [1.0, 0.0])])
    sqlite_index.upsert([_chunk("app_1", "app.json", [0.0, 1.0])])

    hits = sqlite_index.search([0.0, 1.0], 5)
    assert len(hits) == 1
    assert hits[0].score == pytest.approx(1.0)

    sqlite_index.delete(["app_1", "missing_key"])
    assert sqlite_index.keys() == set()


def test_sqlite_index_search_ranks_and_filters(sqlite_index: SqliteVectorIndex) -> None:
    sqlite_index.upsert(
        [
            _chunk("near", "a.json", [1.0, 0.1]),
            _chunk("far", "a.json", [0.0, 1.0]),
            _chunk("other", "b.json", [1.0, 0.0]),
        ]
    )

    hits = sqlite_index.search([1.0, 0.0], 2)
    assert [hit.chunk_id for hit in hits] == ["other", "near"]

    filtered = sqlite_index.search([1.0, 0.0], 5, source_file_name="a.json")
    assert [hit.chunk_id for hit in filtered] == ["near", "far"]
    assert all(hit.source_path == "a.json" for hit in filtered)


def test_sqlite_index_requires_existing_file_for_search(tmp_path: Path) -> None:
    index = SqliteVectorIndex(tmp_path / "missing" / "rag.db")

    assert index.keys() == set()
    with pytest.raises(FileNotFoundError, match="rag-sync"):
        index.search([1.0], 3)


def test_json_index_roundtrip_delete_and_filter(tmp_path: Path) -> None:
    index = JsonVectorIndex(tmp_path / "rag_index")
    index.upsert(
        [
            _chunk("a_1", "a.json", [1.0, 0.0]),
            _chunk("b_1", "b.json", [0.0, 1.0]),
        ]
    )

    assert index.index_file.exists()
    assert not index.index_file.with_suffix(".json.tmp").exists()
    assert index.keys() == {"a_1", "b_1"}

    hits = index.search([0.0, 1.0], 1)
    assert [hit.chunk_id for hit in hits] == ["b_1"]
    assert [hit.chunk_id for hit in index.search([0.0, 1.0], 5, source_file_name="a.json")] == ["a_1"]

    index.delete(["b_1"])
    assert index.keys() == {"a_1"}


def test_json_index_search_requires_existing_file(tmp_path: Path) -> None:
    index = JsonVectorIndex(tmp_path / "rag_index")

    assert index.keys() == set()
    with pytest.raises(FileNotFoundError, match="rag-sync"):
        index.search([1.0], 3)
