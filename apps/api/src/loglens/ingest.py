from __future__ import annotations

import argparse
import json
import sys
from time import sleep

from loglens.config import get_settings
from loglens.db import init_db
from loglens.logging_config import configure_logging
from loglens.services.rag.ledger import LedgerError
from loglens.services.rag.pipeline import run_sync
from loglens.services.rag.types import IngestionSummary


def _build_parser() -> argparse.ArgumentParser:
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="rag-sync",
        description="Incrementally sync PDF, JSON log and Loki sources into the semantic index",
    )
    parser.add_argument(
        "--interval-seconds",
        type=int,
        default=settings.ingest_interval_seconds,
        help="Repeat the pass every N seconds (0 runs a single pass)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the pass summary as a JSON object",
    )
    return parser


def _report(summary: IngestionSummary, *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(summary.as_dict()), flush=True)
        return

    for source in summary.sources:
        status = f"error={source.error}" if source.error else "ok"
        print(
            "[rag-sync] "
            f"source={source.source_id} "
            f"added={source.added} updated={source.updated} deleted={source.deleted} "
            f"skipped={source.skipped} failed={source.failed} {status}",
            flush=True,
        )
    print(
        "[rag-sync] completed "
        f"documents={summary.document_count} "
        f"chunks={summary.chunk_count} "
        f"duration_ms={summary.duration_ms}",
        flush=True,
    )


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        init_db()
        while True:
            _report(run_sync(settings=settings), as_json=args.json)
            if args.interval_seconds <= 0:
                break
            sleep(args.interval_seconds)
    except KeyboardInterrupt:
        print("[rag-sync] interrupted", file=sys.stderr, flush=True)
    except (LedgerError, ValueError) as exc:
        print(f"[rag-sync] failed: {exc}", file=sys.stderr, flush=True)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
