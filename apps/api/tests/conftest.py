from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from loglens.config import get_settings
from loglens.db import get_engine, init_db
from loglens.main import app
from loglens.services.rag.ledger import IngestionLedger
from loglens.services.rag.sqlite_store import SqliteVectorIndex


@pytest.fixture(autouse=True)
def reset_api_caches() -> Iterator[None]:
    get_settings.cache_clear()
    get_engine.cache_clear()
    yield
    get_settings.cache_clear()
    get_engine.cache_clear()


@pytest.fixture
def ledger_engine(tmp_path: Path) -> Iterator[Engine]:
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'ledger-tests.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def ledger(ledger_engine: Engine) -> IngestionLedger:
    return IngestionLedger(ledger_engine)


@pytest.fixture
def sqlite_index(tmp_path: Path) -> SqliteVectorIndex:
    return SqliteVectorIndex(tmp_path / "rag_index" / "rag.db")


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[TestClient]:
    monkeypatch.setenv("LEDGER_DATABASE_URL", f"sqlite+pysqlite:///{tmp_path / 'api-tests.db'}")
    monkeypatch.setenv("LEDGER_DB_ECHO", "false")
    monkeypatch.setenv("RAG_INDEX_DIR", str(tmp_path / "rag_index"))
    monkeypatch.setenv("RAG_DB_PATH", str(tmp_path / "rag_index" / "rag.db"))
    monkeypatch.setenv("INGEST_PDF_DIR", str(tmp_path / "pdfs"))
    monkeypatch.setenv("INGEST_LOGS_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("INGEST_ON_STARTUP", "false")
    monkeypatch.setenv("INGEST_INTERVAL_SECONDS", "0")
    monkeypatch.setenv("EMBED_PROVIDER", "hash")
    monkeypatch.setenv("LOKI_ENABLED", "false")

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    get_engine().dispose()
