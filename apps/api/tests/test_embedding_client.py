import httpx
import pytest

from loglens.config import get_settings
from loglens.services.rag.embedder import HashEmbeddingClient, embed_text
from loglens.services.rag.embedding_client import (
    EmbeddingClientError,
    OllamaEmbeddingClient,
    create_embedding_client,
)


class _FakeResponse:
    def __init__(self, payload: dict[str, object], *, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            request = httpx.Request("POST", "http://localhost:11434/v1/embeddings")
            response = httpx.Response(self.status_code, request=request)
            raise httpx.HTTPStatusError("request failed", request=request, response=response)

    def json(self) -> dict[str, object]:
        return self._payload


def test_ollama_embedding_client_parses_vectors(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_post(url: str, *, json: dict[str, object], timeout: float) -> _FakeResponse:
        captured["url"] = url
        captured["json"] = json
        captured["timeout"] = timeout
        return _FakeResponse(
            {
                "data": [
                    {"embedding": [1, 2, 3]},
                    {"embedding": [4.5, 5.0, 6.25]},
                ]
            }
        )

    monkeypatch.setattr("loglens.services.rag.embedding_client.httpx.post", fake_post)

    client = OllamaEmbeddingClient(
        base_url="http://localhost:11434/v1",
        model="nomic-embed-text",
        timeout_seconds=12,
    )
    vectors = client.embed_texts(["first", "second"])

    assert vectors == [[1.0, 2.0, 3.0], [4.5, 5.0, 6.25]]
    assert captured["url"] == "http://localhost:11434/v1/embeddings"
    assert captured["json"] == {
        "model": "nomic-embed-text",
        "input": ["first", "second"],
    }
    assert captured["timeout"] == 12


def test_ollama_embedding_client_rejects_payload_size_mismatch(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def fake_post(url: str, *, json: dict[str, object], timeout: float) -> _FakeResponse:
        del url, json, timeout
        return _FakeResponse({"data": [{"embedding": [1, 2, 3]}]})

    monkeypatch.setattr("loglens.services.rag.embedding_client.httpx.post", fake_post)

    client = OllamaEmbeddingClient(
        base_url="http://localhost:11434/v1",
        model="nomic-embed-text",
    )

    with pytest.raises(EmbeddingClientError, match="expected 2 vectors"):
        client.embed_texts(["first", "second"])


def test_ollama_embedding_client_retries_rate_limited_requests(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls: list[int] = []

    def fake_post(url: str, *, json: dict[str, object], timeout: float) -> _FakeResponse:
        del url, json, timeout
        calls.append(1)
        if len(calls) < 3:
            return _FakeResponse({}, status_code=429)
        return _FakeResponse({"data": [{"embedding": [0.5, 0.5]}]})

    monkeypatch.setattr("loglens.services.rag.embedding_client.httpx.post", fake_post)

    client = OllamaEmbeddingClient(
        base_url="http://localhost:11434/v1",
        model="nomic-embed-text",
        max_attempts=3,
        retry_base_seconds=0,
    )

    assert client.embed_texts(["only"]) == [[0.5, 0.5]]
    assert len(calls) == 3


def test_ollama_embedding_client_gives_up_after_max_attempts(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls: list[int] = []

    def fake_post(url: str, *, json: dict[str, object], timeout: float) -> _FakeResponse:
        del url, json, timeout
        calls.append(1)
        return _FakeResponse({}, status_code=429)

    monkeypatch.setattr("loglens.services.rag.embedding_client.httpx.post", fake_post)

    client = OllamaEmbeddingClient(
        base_url="http://localhost:11434/v1",
        model="nomic-embed-text",
        max_attempts=2,
        retry_base_seconds=0,
    )

    with pytest.raises(EmbeddingClientError, match="rate limited"):
        client.embed_texts(["only"])
    assert len(calls) == 2


def test_ollama_embedding_client_wraps_http_errors_without_retry(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls: list[int] = []

    def fake_post(url: str, *, json: dict[str, object], timeout: float) -> _FakeResponse:
        del url, json, timeout
        calls.append(1)
        return _FakeResponse({}, status_code=500)

    monkeypatch.setattr("loglens.services.rag.embedding_client.httpx.post", fake_post)

    client = OllamaEmbeddingClient(
        base_url="http://localhost:11434/v1",
        model="nomic-embed-text",
        retry_base_seconds=0,
    )

    with pytest.raises(EmbeddingClientError, match="request failed"):
        client.embed_texts(["only"])
    assert len(calls) == 1


def test_hash_embedding_client_is_deterministic() -> None:
    client = HashEmbeddingClient(dimensions=8)

    first, second, again = client.embed_texts(["alpha", "beta", "alpha"])

    assert len(first) == 8
    assert first == again
    assert first != second
    assert first == embed_text("alpha", dimensions=8)
    assert sum(value * value for value in first) == pytest.approx(1.0)


def test_create_embedding_client_selects_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EMBED_PROVIDER", "hash")
    assert isinstance(create_embedding_client(get_settings()), HashEmbeddingClient)

    get_settings.cache_clear()
    monkeypatch.setenv("EMBED_PROVIDER", "ollama")
    assert isinstance(create_embedding_client(get_settings()), OllamaEmbeddingClient)

    get_settings.cache_clear()
    monkeypatch.setenv("EMBED_PROVIDER", "bogus")
    with pytest.raises(ValueError, match="Unsupported EMBED_PROVIDER"):
        create_embedding_client(get_settings())
