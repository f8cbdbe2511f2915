from __future__ import annotations

from loglens.services.rag.embedding_client import EmbeddingClient, EmbeddingClientError
from loglens.services.rag.types import QueryHit
from loglens.services.rag.vector_index import SemanticIndex


def search_index(
    *,
    index: SemanticIndex,
    query_text: str,
    embedding_client: EmbeddingClient,
    top_k: int = 3,
    source_file_name: str | None = None,
) -> list[QueryHit]:
    normalized_query = query_text.strip()
    if not normalized_query:
        raise ValueError("query_text must not be empty")

    try:
        query_embedding = embedding_client.embed_texts([normalized_query])[0]
    except (EmbeddingClientError, IndexError) as exc:
        raise ValueError(f"Failed to generate query embedding: {exc}") from exc

    return index.search(
        query_embedding,
        max(1, top_k),
        source_file_name=source_file_name or None,
    )
