from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
import random

from loglens.services.loki.models import (
    LokiLabelsResponse,
    LokiQueryData,
    LokiQueryResponse,
    LokiStream,
)

_ACTIONS = [
    "User login successful",
    "Data processed successfully",
    "API request completed",
    "Database query executed",
    "Cache refreshed",
    "Configuration loaded",
    "File uploaded",
    "Email notification sent",
    "Background task completed",
    "Health check passed",
]
_USERS = ["user123", "admin", "service_account", "guest_user", "john.doe"]
_COMPONENTS = ["AuthService", "DataProcessor", "ApiController", "DatabaseManager", "CacheService"]
_ERRORS = [
    "Connection timeout",
    "Database query failed",
    "Validation error",
    "Authentication failed",
    "Permission denied",
    "Resource not found",
    "Out of memory",
    "Unexpected exception",
]
_LABELS = [
    "app",
    "env",
    "level",
    "host",
    "namespace",
    "pod",
    "container",
    "job",
    "service",
    "region",
]
SAMPLE_SPAN = timedelta(hours=2)

_LABEL_VALUES = {
    "app": ["anomalie-detection", "authentication-service", "payment-processor", "api-gateway", "frontend"],
    "env": ["production", "staging", "development", "testing", "demo"],
    "level": ["debug", "info", "warning", "error", "critical"],
    "host": ["server-01", "server-02", "server-03", "worker-01", "worker-02"],
    "namespace": ["default", "kube-system", "monitoring", "logging", "application"],
    "service": ["api", "auth", "database", "cache", "worker", "scheduler"],
}


def _to_nanoseconds(timestamp: datetime) -> str:
    return str(int(timestamp.timestamp() * 1000) * 1_000_000)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def select_window(
    response: LokiQueryResponse,
    start_ns: int,
    end_ns: int,
    *,
    limit: int,
    direction: str = "backward",
) -> LokiQueryResponse:
    """Apply query_range window, limit and direction semantics to generated streams."""
    streams = response.data.result if response.data is not None else []

    entries: list[tuple[int, int, str, str]] = []
    for position, stream in enumerate(streams):
        for raw_timestamp, line in stream.values:
            timestamp = int(raw_timestamp)
            if start_ns <= timestamp < end_ns:
                entries.append((timestamp, position, raw_timestamp, line))
    entries.sort(reverse=direction == "backward")

    selected: dict[int, list[tuple[str, str]]] = {}
    for _, position, raw_timestamp, line in entries[:limit]:
        selected.setdefault(position, []).append((raw_timestamp, line))

    return LokiQueryResponse(
        status=response.status,
        data=LokiQueryData(
            resultType="streams",
            result=[
                LokiStream(stream=dict(streams[position].stream), values=values)
                for position, values in sorted(selected.items())
            ],
        ),
    )


class SampleLogGenerator:
    """Demo stand-in for a Loki backend.

    Every call replays the same seeded sequence, anchored one hour before the
    start of the current hour, so a fixed seed and clock always yield the same
    logs and closed hours never change.
    """

    def __init__(
        self,
        *,
        seed: int = 1337,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._seed = seed
        self._clock = clock

    def _anchor(self) -> datetime:
        return self._clock().replace(minute=0, second=0, microsecond=0) - timedelta(hours=1)

    def sample_logs(self, count: int = 50, *, include_errors: bool = True) -> LokiQueryResponse:
        rng = random.Random(self._seed)
        return self._response(self._sample_values(rng, count, include_errors=include_errors))

    def anomalous_logs(self, count: int = 50) -> LokiQueryResponse:
        rng = random.Random(self._seed)
        values = self._sample_values(rng, count, include_errors=True)

        timestamp = self._anchor()
        for _ in range(5):
            timestamp += timedelta(minutes=rng.randint(1, 9))
            address = ".".join(str(rng.randint(1, 254)) for _ in range(4))
            values.append(
                (
                    _to_nanoseconds(timestamp),
                    f"WARNING: Failed login attempt from IP {address} for user admin",
                )
            )

        for _ in range(3):
            timestamp += timedelta(minutes=rng.randint(1, 4))
            values.append(
                (
                    _to_nanoseconds(timestamp),
                    f"WARNING: Memory usage spike detected: {rng.randint(85, 98)}% used",
                )
            )

        for _ in range(4):
            timestamp += timedelta(seconds=rng.randint(30, 89))
            values.append(
                (
                    _to_nanoseconds(timestamp),
                    f"ERROR: Database query timeout after {rng.randint(28, 34)}s "
                    "for query 'SELECT * FROM large_table WHERE complex_condition'",
                )
            )

        return self._response(sorted(values, key=lambda value: int(value[0])))

    def labels(self) -> LokiLabelsResponse:
        return LokiLabelsResponse(status="success", data=list(_LABELS))

    def label_values(self, label_name: str) -> LokiLabelsResponse:
        values = _LABEL_VALUES.get(label_name, ["value1", "value2", "value3"])
        return LokiLabelsResponse(status="success", data=list(values))

    @staticmethod
    def _response(values: list[tuple[str, str]]) -> LokiQueryResponse:
        return LokiQueryResponse(
            status="success",
            data=LokiQueryData(
                resultType="streams",
                result=[
                    LokiStream(
                        stream={"app": "anomalie-detection", "env": "demo", "level": "info"},
                        values=values,
                    )
                ],
            ),
        )

    def _sample_values(
        self,
        rng: random.Random,
        count: int,
        *,
        include_errors: bool,
    ) -> list[tuple[str, str]]:
        timestamp = self._anchor()
        values: list[tuple[str, str]] = []
        # entries cover roughly SAMPLE_SPAN from the anchor
        max_step_ms = max(2, int(2 * SAMPLE_SPAN.total_seconds() * 1000) // max(1, count))

        for _ in range(count):
            timestamp += timedelta(milliseconds=rng.randint(1, max_step_ms))
            if include_errors and rng.randrange(10) < 2:
                values.append(self._error_entry(rng, timestamp))
            else:
                values.append(self._normal_entry(rng, timestamp))
        return values

    @staticmethod
    def _normal_entry(rng: random.Random, timestamp: datetime) -> tuple[str, str]:
        action = rng.choice(_ACTIONS)
        user = rng.choice(_USERS)
        component = rng.choice(_COMPONENTS)
        duration = rng.randint(5, 1499)
        return _to_nanoseconds(timestamp), f"{component} - {action} for {user} in {duration}ms"

    @staticmethod
    def _error_entry(rng: random.Random, timestamp: datetime) -> tuple[str, str]:
        error = rng.choice(_ERRORS)
        component = rng.choice(_COMPONENTS)
        code = rng.randint(400, 599)
        message = f"ERROR in {component}: {error} (Code: {code})"

        if rng.randrange(3) == 0:
            message += (
                "\nStack trace:\n"
                f"  at {component}.ProcessRequest() in {component}.cs:line {rng.randint(50, 499)}\n"
                f"  at RequestHandler.Execute() in RequestHandler.cs:line {rng.randint(20, 299)}"
            )

        return _to_nanoseconds(timestamp), message
