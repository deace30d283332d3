"""Holds the current snapshot and refreshes it on demand or on a timer."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable

from .commands import CommandRunner
from .config import TownConfig
from .loader import SnapshotLoader
from .models import Batch, Issue, LoadError, MergeRequest, Pool, Summary, Worker, WorkspaceStatus
from .snapshot import Snapshot

_logger = logging.getLogger("townwatch.store")

RefreshObserver = Callable[[Snapshot], None]


class Store:
    """Single current snapshot, replaced whole on every refresh.

    ``_lock`` only guards the reference; loading happens outside it so
    readers are never blocked by a refresh in progress.
    """

    def __init__(self, loader: SnapshotLoader) -> None:
        self.loader = loader
        self._lock = threading.Lock()
        self._snapshot: Snapshot | None = None
        self._refresh_lock = threading.Lock()
        self._observers: list[RefreshObserver] = []
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @classmethod
    def from_config(cls, config: TownConfig, *, runner: CommandRunner | None = None) -> "Store":
        return cls(SnapshotLoader(config, runner=runner))

    # ------------------------------------------------------------------
    # refresh
    # ------------------------------------------------------------------

    def on_refresh(self, observer: RefreshObserver) -> None:
        self._observers.append(observer)

    def refresh(self, cancel: threading.Event | None = None) -> Snapshot:
        with self._refresh_lock:
            snapshot = self.loader.load(cancel)
            with self._lock:
                self._snapshot = snapshot
        for observer in list(self._observers):
            observer(snapshot)
        return snapshot

    def start_auto_refresh(self, interval_sec: float, cancel: threading.Event | None = None) -> None:
        """Refresh now, then every *interval_sec* after the previous one ends.

        Stops when *cancel* is set or ``stop()`` is called. Does nothing for a
        non-positive interval.
        """
        if interval_sec <= 0:
            return
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("auto refresh already running")
        self._stop.clear()
        self._safe_refresh(cancel)
        self._thread = threading.Thread(
            target=self._refresh_loop,
            args=(interval_sec, cancel),
            name="townwatch-auto-refresh",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def _stopped(self, cancel: threading.Event | None) -> bool:
        return self._stop.is_set() or (cancel is not None and cancel.is_set())

    def _refresh_loop(self, interval_sec: float, cancel: threading.Event | None) -> None:
        while not self._stop.wait(interval_sec):
            if self._stopped(cancel):
                break
            self._safe_refresh(cancel)

    def _safe_refresh(self, cancel: threading.Event | None) -> None:
        try:
            self.refresh(cancel)
        except Exception as exc:  # noqa: BLE001
            _logger.error(f"auto refresh failed: {exc}")

    # ------------------------------------------------------------------
    # accessors
    # ------------------------------------------------------------------

    def snapshot(self) -> Snapshot | None:
        with self._lock:
            return self._snapshot

    def workspace_status(self) -> WorkspaceStatus | None:
        snapshot = self.snapshot()
        return snapshot.workspace if snapshot is not None else None

    def pools(self) -> list[Pool]:
        status = self.workspace_status()
        return list(status.pools) if status is not None else []

    def pool(self, name: str) -> Pool | None:
        status = self.workspace_status()
        return status.pool(name) if status is not None else None

    def workers(self) -> list[Worker]:
        snapshot = self.snapshot()
        return list(snapshot.workers) if snapshot is not None else []

    def batches(self) -> list[Batch]:
        snapshot = self.snapshot()
        return list(snapshot.batches) if snapshot is not None else []

    def merge_queue(self, pool: str) -> list[MergeRequest]:
        snapshot = self.snapshot()
        if snapshot is None:
            return []
        return list(snapshot.merge_queues.get(pool, []))

    def all_merge_queues(self) -> dict[str, list[MergeRequest]]:
        snapshot = self.snapshot()
        if snapshot is None:
            return {}
        return {pool: list(items) for pool, items in snapshot.merge_queues.items()}

    def issues(self) -> list[Issue]:
        snapshot = self.snapshot()
        return list(snapshot.issues) if snapshot is not None else []

    def issues_by_status(self, status: str) -> list[Issue]:
        return [issue for issue in self.issues() if issue.status == status]

    def open_issues(self) -> list[Issue]:
        return self.issues_by_status("open")

    def in_progress_issues(self) -> list[Issue]:
        return self.issues_by_status("in_progress")

    def summary(self) -> Summary:
        status = self.workspace_status()
        return status.summary if status is not None else Summary()

    def last_refresh(self) -> datetime | None:
        snapshot = self.snapshot()
        return snapshot.loaded_at if snapshot is not None else None

    def errors(self) -> list[Exception]:
        snapshot = self.snapshot()
        return list(snapshot.errors) if snapshot is not None else []

    def load_errors(self) -> list[LoadError]:
        snapshot = self.snapshot()
        return list(snapshot.load_errors) if snapshot is not None else []
