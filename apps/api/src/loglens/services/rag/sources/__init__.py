from loglens.services.rag.sources.base import (
    ContentSource,
    MalformedContentError,
    SourceEnumerationError,
    embed_each,
)
from loglens.services.rag.sources.json_log_directory import JsonLogDirectorySource
from loglens.services.rag.sources.pdf_directory import PdfDirectorySource

__all__ = [
    "ContentSource",
    "JsonLogDirectorySource",
    "MalformedContentError",
    "PdfDirectorySource",
    "SourceEnumerationError",
    "embed_each",
]
