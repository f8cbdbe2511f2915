from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
from pydantic import ValidationError

from loglens.services.loki.models import LokiLabelsResponse, LokiQueryResponse
from loglens.services.loki.sample_data import SampleLogGenerator, select_window

PLACEHOLDER_ENDPOINT = "http://your-grafana-loki-server:3100"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class LokiClientError(RuntimeError):
    pass


def to_nanoseconds(value: datetime) -> int:
    """Unix epoch nanoseconds, the unit Loki uses for query bounds and entries."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // timedelta(microseconds=1) * 1000


class LokiClient:
    """Read-only client for the Loki HTTP query API.

    With ``use_sample_data`` (or the placeholder endpoint) every call is served
    by a seeded :class:`SampleLogGenerator` instead of the network.
    """

    def __init__(
        self,
        *,
        endpoint: str = "http://localhost:3100",
        username: str | None = None,
        password: str | None = None,
        timeout_seconds: float = 30.0,
        use_sample_data: bool = False,
        sample_generator: SampleLogGenerator | None = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._auth = httpx.BasicAuth(username, password) if username and password else None
        self._timeout_seconds = timeout_seconds

        self._use_sample_data = use_sample_data or endpoint == PLACEHOLDER_ENDPOINT
        self._sample_generator = (
            (sample_generator or SampleLogGenerator()) if self._use_sample_data else None
        )

    @property
    def uses_sample_data(self) -> bool:
        return self._sample_generator is not None

    def _get(self, path: str, params: dict[str, str] | None = None) -> dict[str, object]:
        try:
            response = httpx.get(
                f"{self._endpoint}{path}",
                params=params,
                auth=self._auth,
                timeout=self._timeout_seconds,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise LokiClientError(str(exc)) from exc

        payload = response.json()
        if not isinstance(payload, dict):
            raise LokiClientError(f"Invalid Loki payload from {path}: expected a JSON object")
        return payload

    def query_range(
        self,
        query: str,
        start_ns: int,
        end_ns: int,
        *,
        limit: int = 100,
        direction: str = "backward",
    ) -> LokiQueryResponse:
        """Entries in ``[start_ns, end_ns)``, at most ``limit`` across all streams."""
        if self._sample_generator is not None:
            lowered = query.lower()
            if "anomaly" in lowered or "error" in lowered:
                generated = self._sample_generator.anomalous_logs(limit)
            else:
                generated = self._sample_generator.sample_logs(limit)
            return select_window(generated, start_ns, end_ns, limit=limit, direction=direction)

        payload = self._get(
            "/loki/api/v1/query_range",
            {
                "query": query,
                "start": str(start_ns),
                "end": str(end_ns),
                "limit": str(limit),
                "direction": direction,
            },
        )
        try:
            response = LokiQueryResponse.model_validate(payload)
        except ValidationError as exc:
            raise LokiClientError(f"Invalid Loki query_range payload: {exc}") from exc

        if response.status != "success":
            raise LokiClientError(f"Loki query failed with status={response.status!r}")
        return response

    def labels(self) -> LokiLabelsResponse:
        if self._sample_generator is not None:
            return self._sample_generator.labels()
        return self._labels_response(self._get("/loki/api/v1/labels"))

    def label_values(self, label_name: str) -> LokiLabelsResponse:
        if self._sample_generator is not None:
            return self._sample_generator.label_values(label_name)
        return self._labels_response(self._get(f"/loki/api/v1/label/{label_name}/values"))

    @staticmethod
    def _labels_response(payload: dict[str, object]) -> LokiLabelsResponse:
        try:
            return LokiLabelsResponse.model_validate(payload)
        except ValidationError as exc:
            raise LokiClientError(f"Invalid Loki labels payload: {exc}") from exc
