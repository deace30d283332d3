"""Concurrent snapshot assembly.

One refresh cycle runs the workspace status first, fans out one thread per
independent source, then a second wave that needs pool names or the batch
list. Every failure is recorded on the snapshot; nothing aborts the cycle.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from .commands import CommandRunner, SubprocessRunner
from .config import TownConfig
from .doctor import load_doctor_report
from .errors import TownwatchError
from .eventlog import lifecycle_log_path, load_lifecycle_log
from .health import derive_operational_state
from .models import LoadError
from .plugins import load_plugins
from .reconcile import reconcile_snapshot
from .routes import load_routes, routes_path
from .snapshot import Snapshot
from .sources import TownReader
from .worktrees import load_worktrees

_logger = logging.getLogger("townwatch.loader")

# Readers raise TownwatchError subclasses; file scans can also raise OSError.
_SOURCE_FAILURES = (TownwatchError, OSError)


class _SnapshotBuilder:
    """The snapshot under construction plus the lock that guards it."""

    def __init__(self, now: datetime) -> None:
        self.now = now
        self.snapshot = Snapshot(loaded_at=now)
        self._lock = threading.Lock()

    def succeed(self, source: str, apply: Callable[[Snapshot], None], *, mark: bool = True) -> None:
        with self._lock:
            apply(self.snapshot)
            if mark:
                self.snapshot.last_success[source] = self.now

    def fail(self, source: str, command: str, exc: Exception) -> None:
        _logger.warning(f"{source} failed ({command}): {exc}")
        entry = LoadError(source=source, command=command, error=str(exc), occurred_at=datetime.now(timezone.utc))
        with self._lock:
            self.snapshot.load_errors.append(entry)
            self.snapshot.errors.append(exc)


@dataclass(frozen=True)
class _Job:
    source: str
    command: str
    fetch: Callable[[], Any]
    apply: Callable[[Snapshot, Any], None]
    error_source: str = ""


def _set(name: str) -> Callable[[Snapshot, Any], None]:
    def _apply(snapshot: Snapshot, value: Any) -> None:
        setattr(snapshot, name, value)

    return _apply


def _set_queue(pool: str) -> Callable[[Snapshot, Any], None]:
    def _apply(snapshot: Snapshot, value: Any) -> None:
        snapshot.merge_queues[pool] = value

    return _apply


def _set_active_issues(snapshot: Snapshot, value: Any) -> None:
    snapshot.active_issues = value
    snapshot.active_issues_loaded = True


class SnapshotLoader:
    def __init__(
        self,
        config: TownConfig,
        *,
        runner: CommandRunner | None = None,
        reader: TownReader | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.runner = runner if runner is not None else SubprocessRunner(timeout_sec=config.command_timeout_sec)
        self.reader = reader if reader is not None else TownReader(config.root, self.runner)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------

    def _run_job(self, builder: _SnapshotBuilder, job: _Job) -> None:
        try:
            value = job.fetch()
        except _SOURCE_FAILURES as exc:
            builder.fail(job.error_source or job.source, job.command, exc)
            return
        except Exception as exc:  # noqa: BLE001
            _logger.exception(f"{job.source} raised unexpectedly")
            builder.fail(job.error_source or job.source, job.command, exc)
            return
        builder.succeed(job.source, lambda snapshot: job.apply(snapshot, value))

    def _run_wave(self, builder: _SnapshotBuilder, jobs: list[_Job]) -> None:
        threads = [
            threading.Thread(target=self._run_job, args=(builder, job), name=f"townwatch-{job.source}", daemon=True)
            for job in jobs
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    # ------------------------------------------------------------------

    def load(self, cancel: threading.Event | None = None) -> Snapshot:
        cfg = self.config
        reader = self.reader
        builder = _SnapshotBuilder(self._clock())
        snapshot = builder.snapshot

        self._run_job(
            builder,
            _Job(
                "workspace_status",
                "gt status --json --fast",
                lambda: reader.load_workspace_status(cancel),
                _set("workspace"),
            ),
        )

        self._run_wave(
            builder,
            [
                _Job("workers", "gt polecat list --all --json", lambda: reader.load_workers(cancel), _set("workers")),
                _Job(
                    "batches",
                    "gt convoy list --json",
                    lambda: reader.load_batches_with_details(cancel),
                    _set("batches"),
                ),
                _Job(
                    "closed_batches",
                    "gt convoy list --status=closed --json",
                    lambda: reader.load_closed_batches(cancel),
                    _set("closed_batches"),
                ),
                _Job("issues", "bd list --json --limit 0", lambda: reader.load_issues(cancel), _set("issues")),
                _Job("mail", "gt mail inbox --json", lambda: reader.load_mail(cancel), _set("mail")),
                _Job(
                    "active_issues",
                    "bd list --json --status hooked|in_progress --limit 0",
                    lambda: reader.load_active_issues(cancel),
                    _set_active_issues,
                ),
                _Job(
                    "lifecycle",
                    str(lifecycle_log_path(cfg.root)),
                    lambda: load_lifecycle_log(cfg.root, cfg.lifecycle_limit),
                    _set("lifecycle"),
                ),
                _Job(
                    "health_report",
                    "gt doctor",
                    lambda: load_doctor_report(cfg.root, self.runner, cancel),
                    _set("health_report"),
                ),
            ],
        )

        snapshot.operational = derive_operational_state(
            snapshot.workspace,
            degraded_mode=cfg.degraded_mode,
            patrol_muted=cfg.patrol_muted,
            now=builder.now,
        )

        if snapshot.batches:
            self._load_batch_statuses(builder, cancel)

        pools = snapshot.pool_names()
        if snapshot.workspace is not None:
            jobs = [
                _Job(
                    f"merge_queue_{pool}",
                    f"gt mq list {pool} --json",
                    lambda pool=pool: reader.load_merge_queue(pool, cancel),
                    _set_queue(pool),
                    error_source="merge_queue",
                )
                for pool in pools
            ]
            jobs.append(
                _Job(
                    "worktrees",
                    "scan <pool>/crew worktrees",
                    lambda: load_worktrees(cfg.root, pools, self.runner, cancel),
                    _set("worktrees"),
                )
            )
            jobs.append(
                _Job("plugins", "scan plugin directories", lambda: load_plugins(cfg.root, pools), _set("plugins"))
            )
            self._run_wave(builder, jobs)

        self._run_job(
            builder,
            _Job("routes", str(routes_path(cfg.root)), lambda: load_routes(cfg.root), _set("routes")),
        )

        overseer = snapshot.workspace.overseer if snapshot.workspace is not None else None
        snapshot.identity = reader.load_identity(overseer, snapshot.issues, limit=cfg.recent_limit, cancel=cancel)

        reconcile_snapshot(snapshot)
        _logger.debug(
            f"snapshot loaded: {len(snapshot.last_success)} sources ok, {len(snapshot.load_errors)} errors"
        )
        return snapshot

    def _load_batch_statuses(self, builder: _SnapshotBuilder, cancel: threading.Event | None) -> None:
        statuses, failures = self.reader.load_all_batch_statuses(builder.snapshot.batches, cancel)

        def _apply(snapshot: Snapshot) -> None:
            snapshot.batch_statuses = statuses

        builder.succeed("batch_statuses", _apply, mark=not failures)
        for exc in failures:
            builder.fail("batch_statuses", "gt convoy status <id> --json", exc)
