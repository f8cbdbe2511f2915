from __future__ import annotations

from collections.abc import Iterable, Iterator

LOG_CHUNK_MAX_ENTRIES = 10
LOG_CHUNK_MAX_CHARS = 1000


def chunk_text(text: str, *, chunk_size: int, chunk_overlap: int) -> list[str]:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    if chunk_overlap < 0:
        raise ValueError("chunk_overlap must be >= 0")
    if chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be smaller than chunk_size")

    chunks: list[str] = []
    cursor = 0
    text_length = len(text)

    while cursor < text_length:
        end = min(text_length, cursor + chunk_size)
        chunk = text[cursor:end].strip()
        if chunk:
            chunks.append(chunk)

        if end >= text_length:
            break
        cursor = end - chunk_overlap

    return chunks


def chunk_log_entries(
    entries: Iterable[str],
    *,
    max_entries: int = LOG_CHUNK_MAX_ENTRIES,
    max_chars: int = LOG_CHUNK_MAX_CHARS,
) -> Iterator[tuple[int, str]]:
    """Yield ``(page_number, text)`` groups of newline-joined log entries.

    A group is flushed as soon as it holds ``max_entries`` entries or its joined
    text grows past ``max_chars``; the entry that crossed the limit stays in the
    flushed group. A trailing partial group is always flushed. Page numbers
    start at 1.
    """
    page_number = 1
    buffer: list[str] = []

    for entry in entries:
        buffer.append(entry)
        joined = "\n".join(buffer)
        if len(buffer) >= max_entries or len(joined) > max_chars:
            yield page_number, joined
            buffer = []
            page_number += 1

    if buffer:
        yield page_number, "\n".join(buffer)


def chunk_lines(lines: list[str], *, lines_per_chunk: int) -> list[str]:
    if lines_per_chunk <= 0:
        raise ValueError("lines_per_chunk must be > 0")

    return [
        "\n".join(lines[start : start + lines_per_chunk])
        for start in range(0, len(lines), lines_per_chunk)
    ]
