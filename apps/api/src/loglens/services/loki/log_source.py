from __future__ import annotations

import base64
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import hashlib
import logging

from loglens.services.loki.client import LokiClient, LokiClientError, to_nanoseconds
from loglens.services.loki.models import LokiStream
from loglens.services.rag.chunker import chunk_lines
from loglens.services.rag.embedding_client import EmbeddingClient
from loglens.services.rag.sources.base import MalformedContentError, embed_each
from loglens.services.rag.types import Document, IndexChunk, LedgerDocument

logger = logging.getLogger(__name__)

BUCKET_FORMAT = "%Y%m%d_%H"
LINES_PER_CHUNK = 10
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def floor_hour(value: datetime) -> datetime:
    return value.replace(minute=0, second=0, microsecond=0)


def parse_timestamp(nanoseconds: str) -> datetime:
    return _EPOCH + timedelta(milliseconds=int(nanoseconds) // 1_000_000)


def label_signature(labels: Mapping[str, str]) -> str:
    return "_".join(f"{key}-{labels[key]}" for key in sorted(labels))


def render_line(timestamp: datetime, line: str) -> str:
    return f"[{timestamp:%Y-%m-%d %H:%M:%S}.{timestamp.microsecond // 1000:03d}] {line}"


def content_version(rendered_lines: Iterable[str]) -> str:
    digest = hashlib.sha256("\n".join(rendered_lines).encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


@dataclass(frozen=True)
class LogBucket:
    """All lines of one label stream that fall into one UTC calendar hour."""

    document_id: str
    hour: datetime
    labels: tuple[tuple[str, str], ...]
    lines: tuple[str, ...]

    @property
    def version(self) -> str:
        return content_version(self.lines)


def group_streams(streams: Iterable[LokiStream]) -> list[LogBucket]:
    entries: dict[str, tuple[datetime, dict[str, str], list[tuple[datetime, str]]]] = {}

    for stream in streams:
        signature = label_signature(stream.stream)
        for raw_timestamp, line in stream.values:
            try:
                timestamp = parse_timestamp(raw_timestamp)
            except (ValueError, OverflowError):
                logger.warning("skipping log line with invalid timestamp %r labels=%s", raw_timestamp, signature)
                continue

            hour = floor_hour(timestamp)
            document_id = f"{hour:{BUCKET_FORMAT}}_{signature}"
            bucket = entries.setdefault(document_id, (hour, dict(stream.stream), []))
            bucket[2].append((timestamp, line))

    buckets: list[LogBucket] = []
    for document_id, (hour, labels, lines) in entries.items():
        lines.sort()
        buckets.append(
            LogBucket(
                document_id=document_id,
                hour=hour,
                labels=tuple(sorted(labels.items())),
                lines=tuple(render_line(timestamp, line) for timestamp, line in lines),
            )
        )

    buckets.sort(key=lambda bucket: (bucket.hour, bucket.document_id))
    return buckets


class LokiLogSource:
    """Hour-bucketed log streams pulled from a Loki query over a lookback window.

    Loki data is append-only from our point of view, so deletions are never
    reported: buckets that age out of the window keep their index entries.
    """

    def __init__(
        self,
        client: LokiClient,
        *,
        query: str,
        lookback: timedelta,
        limit: int = 5000,
        max_concurrency: int = 1,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._client = client
        self._query = query
        self._lookback = lookback
        self._limit = limit
        self._max_concurrency = max_concurrency
        self._clock = clock
        self._buckets: dict[str, LogBucket] = {}

    @property
    def source_id(self) -> str:
        return f"{type(self).__name__}:{self._query}"

    def window(self) -> tuple[datetime, datetime]:
        end = self._clock()
        return floor_hour(end - self._lookback), end

    def fetch_streams(self, start: datetime, end: datetime) -> list[LokiStream]:
        """Every entry in ``[start, end)``, paging forward ``limit`` entries at a time.

        Each page restarts at the newest timestamp seen so far; entries at that
        boundary come back again and are dropped as duplicates.
        """
        cursor = to_nanoseconds(start)
        end_ns = to_nanoseconds(end)
        collected: dict[str, LokiStream] = {}
        seen: set[tuple[str, str, str]] = set()

        while cursor < end_ns:
            response = self._client.query_range(
                self._query,
                cursor,
                end_ns,
                limit=self._limit,
                direction="forward",
            )
            page = response.data.result if response.data is not None else []

            returned = 0
            newest = cursor
            for stream in page:
                signature = label_signature(stream.stream)
                target = collected.setdefault(signature, LokiStream(stream=dict(stream.stream)))
                for raw_timestamp, line in stream.values:
                    returned += 1
                    try:
                        newest = max(newest, int(raw_timestamp))
                    except ValueError:
                        pass
                    entry = (signature, raw_timestamp, line)
                    if entry not in seen:
                        seen.add(entry)
                        target.values.append((raw_timestamp, line))

            if returned < self._limit:
                break
            if newest == cursor:
                logger.warning(
                    "more than %d log lines share timestamp %d for query %s; skipping the rest",
                    self._limit,
                    cursor,
                    self._query,
                )
                newest += 1
            cursor = newest

        return list(collected.values())

    def fetch_buckets(self, start: datetime, end: datetime) -> dict[str, LogBucket]:
        return {bucket.document_id: bucket for bucket in group_streams(self.fetch_streams(start, end))}

    def find_new_or_modified(self, existing: Mapping[str, LedgerDocument]) -> list[Document]:
        start, end = self.window()
        self._buckets = self.fetch_buckets(start, end)

        documents: list[Document] = []
        for bucket in self._buckets.values():
            version = bucket.version
            known = existing.get(bucket.document_id)
            if known is None or known.version != version:
                documents.append(
                    Document(id=bucket.document_id, source_id=self.source_id, version=version)
                )
        return documents

    def find_deleted(self, existing: Mapping[str, LedgerDocument]) -> list[LedgerDocument]:
        return []

    def _bucket_for(self, document_id: str) -> LogBucket:
        cached = self._buckets.get(document_id)
        if cached is not None:
            return cached

        try:
            hour = datetime.strptime(document_id[:11], BUCKET_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError as exc:
            raise MalformedContentError(f"not a log bucket id: {document_id}") from exc

        buckets = self.fetch_buckets(hour, hour + timedelta(hours=1))
        bucket = buckets.get(document_id)
        if bucket is None:
            raise LokiClientError(f"log bucket {document_id} is no longer available")
        return bucket

    def materialize(self, embedding_client: EmbeddingClient, document_id: str) -> list[IndexChunk]:
        bucket = self._bucket_for(document_id)
        texts = chunk_lines(list(bucket.lines), lines_per_chunk=LINES_PER_CHUNK)
        vectors = embed_each(embedding_client, texts, max_concurrency=self._max_concurrency)

        return [
            IndexChunk(
                key=f"{document_id}/chunk_{index}",
                source_file_name=document_id,
                page_number=index + 1,
                text=text,
                vector=vector,
            )
            for index, (text, vector) in enumerate(zip(texts, vectors))
        ]
