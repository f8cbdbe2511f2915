from __future__ import annotations

import logging
from threading import Event, Thread
from typing import Callable

from loglens.services.rag.ledger import LedgerError
from loglens.services.rag.pipeline import SyncAlreadyRunningError, run_sync
from loglens.services.rag.types import IngestionSummary

logger = logging.getLogger(__name__)


def _sync_loop(
    interval_seconds: int,
    stop_event: Event,
    runner: Callable[[], IngestionSummary],
) -> None:
    while not stop_event.wait(interval_seconds):
        try:
            runner()
        except SyncAlreadyRunningError:
            logger.info("periodic sync skipped: a pass is already running")
        except LedgerError:
            logger.exception("periodic sync aborted by ledger failure")
        except Exception:
            logger.exception("periodic sync pass failed")


class PeriodicSync:
    """Re-runs the ingestion pass every ``interval_seconds`` on a daemon thread."""

    def __init__(
        self,
        interval_seconds: int,
        *,
        runner: Callable[[], IngestionSummary] | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")

        self._interval_seconds = interval_seconds
        self._runner = runner or (lambda: run_sync(blocking=False))
        self._stop_event = Event()
        self._thread: Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return

        self._stop_event.clear()
        self._thread = Thread(
            target=_sync_loop,
            args=(self._interval_seconds, self._stop_event, self._runner),
            name="loglens-periodic-sync",
            daemon=True,
        )
        self._thread.start()
        logger.info("periodic sync started interval_seconds=%d", self._interval_seconds)

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
