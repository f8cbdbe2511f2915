from datetime import datetime, timezone

from fastapi.testclient import TestClient

from loglens.llm import ChatResult, LLMClientError
from loglens.main import app, get_llm_client, get_loki_client
from loglens.services.loki.analysis import ANOMALY_INSTRUCTION, LogAnalysisService
from loglens.services.loki.client import LokiClientError
from loglens.services.loki.models import (
    LokiLabelsResponse,
    LokiQueryData,
    LokiQueryResponse,
    LokiStream,
)


class FakeLokiClient:
    def __init__(self, values: list[tuple[str, str]] | None = None) -> None:
        self.values = values if values is not None else [("1714566645123456789", "payment failed")]
        self.queries: list[tuple[str, int, int, int]] = []

    def query_range(self, query, start, end, *, limit=100, direction="backward"):
        self.queries.append((query, start, end, limit))
        return LokiQueryResponse(
            status="success",
            data=LokiQueryData(
                resultType="streams",
                result=[LokiStream(stream={"level": "error", "app": "pay"}, values=self.values)],
            ),
        )

    def labels(self) -> LokiLabelsResponse:
        return LokiLabelsResponse(status="success", data=["app", "level"])

    def label_values(self, label_name: str) -> LokiLabelsResponse:
        return LokiLabelsResponse(status="success", data=[f"{label_name}-{index}" for index in range(5)])


class BrokenLokiClient(FakeLokiClient):
    def query_range(self, query, start, end, *, limit=100, direction="backward"):
        raise LokiClientError("loki unreachable")


class FakeLLMClient:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def generate_answer(self, *, question: str, context: str) -> ChatResult:
        return ChatResult(answer="unused", model="fake-model", used_fallback=False)

    def analyze_logs(self, *, logs: str, instruction: str) -> ChatResult:
        self.calls.append((logs, instruction))
        return ChatResult(answer="looks bad", model="fake-model", used_fallback=False)


class FailingLLMClient(FakeLLMClient):
    def analyze_logs(self, *, logs: str, instruction: str) -> ChatResult:
        raise LLMClientError("simulated failure")


def test_service_formats_entries_for_the_model() -> None:
    llm = FakeLLMClient()
    service = LogAnalysisService(FakeLokiClient(), llm)

    result = service.detect_anomalies(
        '{app="pay"}',
        start=datetime(2024, 5, 1, 12, tzinfo=timezone.utc),
        end=datetime(2024, 5, 1, 13, tzinfo=timezone.utc),
    )

    assert result.success
    assert result.analysis == "looks bad"
    assert result.log_sample_count == 1
    assert result.time_range == "2024-05-01 12:00:00 to 2024-05-01 13:00:00"
    logs, instruction = llm.calls[0]
    assert logs == "[2024-05-01 12:30:45.123] app=pay level=error | payment failed"
    assert instruction == ANOMALY_INSTRUCTION


def test_service_reports_empty_results_without_calling_model() -> None:
    llm = FakeLLMClient()
    service = LogAnalysisService(FakeLokiClient(values=[]), llm)

    result = service.summarize('{app="pay"}')

    assert not result.success
    assert result.error_message == "No log entries found"
    assert llm.calls == []


def test_logs_analyze_endpoint_returns_analysis(client: TestClient) -> None:
    loki = FakeLokiClient()
    llm = FakeLLMClient()
    app.dependency_overrides[get_loki_client] = lambda: loki
    app.dependency_overrides[get_llm_client] = lambda: llm

    try:
        response = client.post(
            "/logs/analyze",
            json={"query": '{app="pay"}', "prompt": "Why do payments fail?", "limit": 25},
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["analysis"] == "looks bad"
    assert payload["model"] == "fake-model"
    assert loki.queries[0][3] == 25
    assert llm.calls[0][1] == "Why do payments fail?"


def test_logs_analyze_requires_prompt(client: TestClient) -> None:
    app.dependency_overrides[get_loki_client] = lambda: FakeLokiClient()
    app.dependency_overrides[get_llm_client] = lambda: FakeLLMClient()

    try:
        response = client.post("/logs/analyze", json={"query": '{app="pay"}'})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 422


def test_logs_summary_and_anomalies_map_upstream_failures_to_502(client: TestClient) -> None:
    app.dependency_overrides[get_loki_client] = lambda: BrokenLokiClient()
    app.dependency_overrides[get_llm_client] = lambda: FakeLLMClient()
    try:
        loki_failure = client.post("/logs/summary", json={"query": '{app="pay"}'})
    finally:
        app.dependency_overrides.clear()

    app.dependency_overrides[get_loki_client] = lambda: FakeLokiClient()
    app.dependency_overrides[get_llm_client] = lambda: FailingLLMClient()
    try:
        llm_failure = client.post("/logs/anomalies", json={"query": '{app="pay"}'})
    finally:
        app.dependency_overrides.clear()

    assert loki_failure.status_code == 502
    assert "loki unreachable" in loki_failure.json()["detail"]
    assert llm_failure.status_code == 502
    assert "LLM request failed" in llm_failure.json()["detail"]


def test_label_endpoints(client: TestClient) -> None:
    app.dependency_overrides[get_loki_client] = lambda: FakeLokiClient()

    try:
        labels = client.get("/logs/labels")
        values = client.get("/logs/labels/env/values", params={"limit": 2})
    finally:
        app.dependency_overrides.clear()

    assert labels.json() == ["app", "level"]
    assert values.json() == ["env-0", "env-1"]


def test_service_skips_entries_with_out_of_range_timestamps() -> None:
    llm = FakeLLMClient()
    loki = FakeLokiClient(values=[("1714566645123456789", "payment failed"), ("9" * 30, "garbled")])
    service = LogAnalysisService(loki, llm)

    result = service.summarize('{app="pay"}')

    assert result.success
    assert result.log_sample_count == 1
    assert "garbled" not in llm.calls[0][0]
