from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from loglens.llm import LLMClient
from loglens.services.loki.client import LokiClient, to_nanoseconds
from loglens.services.loki.log_source import parse_timestamp, render_line

ANOMALY_INSTRUCTION = (
    "Analyze these logs for anomalies, errors, or unusual patterns. "
    "Identify any potential issues, their severity, and suggest possible causes and solutions. "
    "If there are error messages, explain what they mean and how to address them. "
    "Also highlight any suspicious activity or security concerns."
)
SUMMARY_INSTRUCTION = (
    "Provide a concise summary of these logs. Include main activities, "
    "key events, error rates, and overall system health. "
    "Organize the summary by categories or components if appropriate."
)


@dataclass(frozen=True)
class LogAnalysisResult:
    success: bool
    analysis: str = ""
    error_message: str = ""
    log_sample_count: int = 0
    time_range: str = ""
    query: str = ""
    model: str = ""


class LogAnalysisService:
    def __init__(self, loki_client: LokiClient, llm_client: LLMClient) -> None:
        self._loki_client = loki_client
        self._llm_client = llm_client

    def collect_entries(
        self,
        query: str,
        start: datetime,
        end: datetime,
        limit: int,
    ) -> list[str]:
        response = self._loki_client.query_range(
            query,
            to_nanoseconds(start),
            to_nanoseconds(end),
            limit=limit,
        )
        streams = response.data.result if response.data is not None else []

        entries: list[str] = []
        for stream in streams:
            labels = " ".join(f"{key}={stream.stream[key]}" for key in sorted(stream.stream))
            for raw_timestamp, line in stream.values:
                try:
                    timestamp = parse_timestamp(raw_timestamp)
                except (ValueError, OverflowError):
                    continue
                entries.append(f"{render_line(timestamp, labels)} | {line}")
        return entries

    def analyze(
        self,
        query: str,
        instruction: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 100,
    ) -> LogAnalysisResult:
        end = end or datetime.now(timezone.utc)
        start = start or end - timedelta(hours=1)

        entries = self.collect_entries(query, start, end, limit)
        if not entries:
            return LogAnalysisResult(
                success=False,
                error_message="No log entries found",
                query=query,
            )

        result = self._llm_client.analyze_logs(logs="\n".join(entries), instruction=instruction)
        return LogAnalysisResult(
            success=True,
            analysis=result.answer,
            log_sample_count=len(entries),
            time_range=f"{start:%Y-%m-%d %H:%M:%S} to {end:%Y-%m-%d %H:%M:%S}",
            query=query,
            model=result.model,
        )

    def detect_anomalies(
        self,
        query: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 500,
    ) -> LogAnalysisResult:
        return self.analyze(query, ANOMALY_INSTRUCTION, start=start, end=end, limit=limit)

    def summarize(
        self,
        query: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 500,
    ) -> LogAnalysisResult:
        return self.analyze(query, SUMMARY_INSTRUCTION, start=start, end=end, limit=limit)
