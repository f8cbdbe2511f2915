from dataclasses import dataclass
from functools import lru_cache
import os


def _to_bool(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: str | None, *, default: int, minimum: int) -> int:
    if value is None:
        return default
    parsed = int(value)
    return max(minimum, parsed)


def _to_float(value: str | None, *, default: float, minimum: float) -> float:
    if value is None:
        return default
    parsed = float(value)
    return max(minimum, parsed)


@dataclass(frozen=True)
class Settings:
    ledger_database_url: str
    ledger_db_echo: bool
    rag_index_backend: str
    rag_index_dir: str
    rag_db_path: str
    rag_chunk_size: int
    rag_chunk_overlap: int
    rag_embedding_dim: int
    ingest_pdf_dir: str
    ingest_logs_dir: str
    ingest_on_startup: bool
    ingest_interval_seconds: int
    embed_provider: str
    embed_max_concurrency: int
    embed_max_attempts: int
    embed_retry_base_seconds: float
    ollama_base_url: str
    ollama_model: str
    ollama_fallback_model: str
    ollama_embed_base_url: str
    ollama_embed_model: str
    ollama_timeout_seconds: float
    loki_enabled: bool
    loki_endpoint: str
    loki_username: str | None
    loki_password: str | None
    loki_query: str
    loki_timeout_seconds: float
    loki_lookback_hours: int
    loki_query_limit: int
    loki_use_sample_data: bool
    loki_sample_seed: int
    log_level: str


@lru_cache
def get_settings() -> Settings:
    rag_index_dir = os.getenv("RAG_INDEX_DIR", "data/rag_index")
    ollama_base_url = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/v1")

    return Settings(
        ledger_database_url=os.getenv(
            "LEDGER_DATABASE_URL",
            "sqlite+pysqlite:///data/ingestion_ledger.db",
        ),
        ledger_db_echo=_to_bool(os.getenv("LEDGER_DB_ECHO"), default=False),
        rag_index_backend=os.getenv("RAG_INDEX_BACKEND", "sqlite").strip().lower(),
        rag_index_dir=rag_index_dir,
        rag_db_path=os.getenv("RAG_DB_PATH", os.path.join(rag_index_dir, "rag.db")),
        rag_chunk_size=_to_int(os.getenv("RAG_CHUNK_SIZE"), default=500, minimum=100),
        rag_chunk_overlap=_to_int(os.getenv("RAG_CHUNK_OVERLAP"), default=50, minimum=0),
        rag_embedding_dim=_to_int(os.getenv("RAG_EMBEDDING_DIM"), default=32, minimum=8),
        ingest_pdf_dir=os.getenv("INGEST_PDF_DIR", "data/pdfs"),
        ingest_logs_dir=os.getenv("INGEST_LOGS_DIR", "data/logs"),
        ingest_on_startup=_to_bool(os.getenv("INGEST_ON_STARTUP"), default=True),
        ingest_interval_seconds=_to_int(
            os.getenv("INGEST_INTERVAL_SECONDS"), default=0, minimum=0
        ),
        embed_provider=os.getenv("EMBED_PROVIDER", "ollama").strip().lower(),
        embed_max_concurrency=_to_int(
            os.getenv("EMBED_MAX_CONCURRENCY"), default=1, minimum=1
        ),
        embed_max_attempts=_to_int(os.getenv("EMBED_MAX_ATTEMPTS"), default=3, minimum=1),
        embed_retry_base_seconds=_to_float(
            os.getenv("EMBED_RETRY_BASE_SECONDS"), default=1.0, minimum=0.0
        ),
        ollama_base_url=ollama_base_url,
        ollama_model=os.getenv("OLLAMA_MODEL", "qwen2.5:7b-instruct-q4_K_M"),
        ollama_fallback_model=os.getenv("OLLAMA_FALLBACK_MODEL", "qwen2.5:3b-instruct-q4_K_M"),
        ollama_embed_base_url=os.getenv("OLLAMA_EMBED_BASE_URL", ollama_base_url),
        ollama_embed_model=os.getenv("OLLAMA_EMBED_MODEL", "nomic-embed-text"),
        ollama_timeout_seconds=float(os.getenv("OLLAMA_TIMEOUT_SECONDS", "30")),
        loki_enabled=_to_bool(os.getenv("LOKI_ENABLED"), default=False),
        loki_endpoint=os.getenv("LOKI_ENDPOINT", "http://localhost:3100"),
        loki_username=os.getenv("LOKI_USERNAME") or None,
        loki_password=os.getenv("LOKI_PASSWORD") or None,
        loki_query=os.getenv("LOKI_QUERY", '{job=~".+"}'),
        loki_timeout_seconds=_to_float(
            os.getenv("LOKI_TIMEOUT_SECONDS"), default=30.0, minimum=1.0
        ),
        loki_lookback_hours=_to_int(os.getenv("LOKI_LOOKBACK_HOURS"), default=24, minimum=1),
        loki_query_limit=_to_int(os.getenv("LOKI_QUERY_LIMIT"), default=5000, minimum=1),
        loki_use_sample_data=_to_bool(os.getenv("LOKI_USE_SAMPLE_DATA"), default=False),
        loki_sample_seed=int(os.getenv("LOKI_SAMPLE_SEED", "1337")),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )
