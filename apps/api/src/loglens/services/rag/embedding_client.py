from __future__ import annotations

from typing import Protocol

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from loglens.config import Settings
from loglens.services.rag.embedder import HashEmbeddingClient


class EmbeddingClientError(RuntimeError):
    pass


class EmbeddingRateLimitedError(EmbeddingClientError):
    pass


class EmbeddingClient(Protocol):
    def embed_texts(self, texts: list[str]) -> list[list[float]]: ...


class OllamaEmbeddingClient:
    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        timeout_seconds: float = 30.0,
        max_attempts: int = 3,
        retry_base_seconds: float = 1.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout_seconds = timeout_seconds
        self._max_attempts = max(1, max_attempts)
        self._retry_base_seconds = max(0.0, retry_base_seconds)

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        retrying = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._retry_base_seconds, max=30),
            retry=retry_if_exception_type((EmbeddingRateLimitedError, httpx.TransportError)),
            reraise=True,
        )
        try:
            payload = retrying(self._post_embeddings, texts)
        except httpx.HTTPError as exc:
            raise EmbeddingClientError(str(exc)) from exc

        data = payload.get("data")
        if not isinstance(data, list):
            raise EmbeddingClientError("Invalid embeddings payload: missing data")

        vectors: list[list[float]] = []
        for item in data:
            embedding = item.get("embedding") if isinstance(item, dict) else None
            if not isinstance(embedding, list) or not embedding:
                raise EmbeddingClientError("Invalid embeddings payload: missing embedding vector")
            vectors.append([float(value) for value in embedding])

        if len(vectors) != len(texts):
            raise EmbeddingClientError(
                f"Invalid embeddings payload: expected {len(texts)} vectors, got {len(vectors)}"
            )

        return vectors

    def _post_embeddings(self, texts: list[str]) -> dict[str, object]:
        response = httpx.post(
            f"{self._base_url}/embeddings",
            json={"model": self._model, "input": texts},
            timeout=self._timeout_seconds,
        )
        if response.status_code == 429:
            raise EmbeddingRateLimitedError("embedding endpoint rate limited the request (429)")
        response.raise_for_status()

        payload = response.json()
        if not isinstance(payload, dict):
            raise EmbeddingClientError("Invalid embeddings payload: expected a JSON object")
        return payload


def create_embedding_client(settings: Settings) -> EmbeddingClient:
    if settings.embed_provider == "hash":
        return HashEmbeddingClient(dimensions=settings.rag_embedding_dim)
    if settings.embed_provider != "ollama":
        raise ValueError(f"Unsupported EMBED_PROVIDER: {settings.embed_provider}")

    return OllamaEmbeddingClient(
        base_url=settings.ollama_embed_base_url,
        model=settings.ollama_embed_model,
        timeout_seconds=settings.ollama_timeout_seconds,
        max_attempts=settings.embed_max_attempts,
        retry_base_seconds=settings.embed_retry_base_seconds,
    )
