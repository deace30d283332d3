"""The point-in-time aggregate assembled by one refresh cycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .models import (
    Batch,
    BatchStatus,
    DoctorReport,
    Identity,
    Issue,
    LifecycleLog,
    LoadError,
    MailMessage,
    MergeRequest,
    OperationalState,
    Plugin,
    Routes,
    Worker,
    WorkspaceStatus,
    Worktree,
)

# Sources whose failure makes the hook figures unreliable.
_HOOK_SOURCES = ("workspace_status", "active_issues")


@dataclass
class Snapshot:
    """Everything loaded in one cycle.

    Fields of a source that failed keep their empty default; nothing is
    carried over from a previous cycle. ``last_success`` holds the sources
    that loaded this cycle, so anything missing from it is stale.
    """

    workspace: WorkspaceStatus | None = None
    workers: list[Worker] = field(default_factory=list)
    batches: list[Batch] = field(default_factory=list)
    closed_batches: list[Batch] = field(default_factory=list)
    batch_statuses: dict[str, BatchStatus] = field(default_factory=dict)
    merge_queues: dict[str, list[MergeRequest]] = field(default_factory=dict)
    issues: list[Issue] = field(default_factory=list)
    active_issues: list[Issue] = field(default_factory=list)
    active_issues_loaded: bool = False
    mail: list[MailMessage] = field(default_factory=list)
    plugins: list[Plugin] = field(default_factory=list)
    identity: Identity | None = None
    lifecycle: LifecycleLog | None = None
    operational: OperationalState | None = None
    health_report: DoctorReport | None = None
    routes: Routes | None = None
    worktrees: list[Worktree] = field(default_factory=list)
    loaded_at: datetime | None = None
    errors: list[Exception] = field(default_factory=list)
    load_errors: list[LoadError] = field(default_factory=list)
    last_success: dict[str, datetime] = field(default_factory=dict)

    def has_errors(self) -> bool:
        return bool(self.errors) or bool(self.load_errors)

    def pool_names(self) -> list[str]:
        if self.workspace is None:
            return []
        return [pool.name for pool in self.workspace.pools if pool.name]

    def unread_mail(self) -> list[MailMessage]:
        return [message for message in self.mail if not message.read]

    def unread_mail_count(self) -> int:
        return len(self.unread_mail())

    def is_stale(self, source: str) -> bool:
        return source not in self.last_success

    def hooks_data_stale(self) -> bool:
        """True when per-agent hook state may not reflect the tracker.

        An unhealthy watchdog marks it stale even when both loads succeeded.
        """
        if self.operational is not None and not self.operational.watchdog_healthy:
            return True
        return any(self.is_stale(source) for source in _HOOK_SOURCES)

    def hooks_count_stale(self) -> bool:
        """True when the summary active-hook count was not re-derived."""
        return not self.active_issues_loaded
