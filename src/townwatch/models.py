"""Typed records decoded from the town's CLI and file sources.

JSON keys follow the tools' own vocabulary (rig, polecat, convoy, bead);
the Python names use the dashboard's: pool, worker, batch, issue.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .decoding import object_list, parse_timestamp, safe_dict, safe_int, safe_list, safe_str

ACTIVE_WORK_STATUSES = {"hooked", "in_progress"}


# ---------------------------------------------------------------------------
# Workspace status (gt status --json)
# ---------------------------------------------------------------------------

@dataclass
class Overseer:
    """The human operator of the town."""
    name: str = ""
    email: str = ""
    username: str = ""
    source: str = ""
    unread_mail: int = 0

    @classmethod
    def from_dict(cls, raw: Any) -> "Overseer":
        raw = safe_dict(raw)
        return cls(
            name=safe_str(raw.get("name")),
            email=safe_str(raw.get("email")),
            username=safe_str(raw.get("username")),
            source=safe_str(raw.get("source")),
            unread_mail=safe_int(raw.get("unread_mail")),
        )


@dataclass
class Agent:
    """A running agent (mayor, deacon, witness, refinery, worker)."""
    name: str = ""
    address: str = ""
    session: str = ""
    role: str = ""
    running: bool = False
    has_work: bool = False
    unread_mail: int = 0
    first_subject: str = ""
    # filled in by reconciliation from the issue tracker
    hooked_bead_id: str = ""
    hooked_status: str = ""
    hooked_at: datetime | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> "Agent":
        raw = safe_dict(raw)
        return cls(
            name=safe_str(raw.get("name")),
            address=safe_str(raw.get("address")),
            session=safe_str(raw.get("session")),
            role=safe_str(raw.get("role")),
            running=bool(raw.get("running", False)),
            has_work=bool(raw.get("has_work", False)),
            unread_mail=safe_int(raw.get("unread_mail")),
            first_subject=safe_str(raw.get("first_subject")),
            hooked_bead_id=safe_str(raw.get("hooked_bead_id")),
            hooked_status=safe_str(raw.get("hooked_status")),
            hooked_at=parse_timestamp(raw.get("hooked_at")),
        )


@dataclass
class Hook:
    """A declared claim slot; exists whether or not an agent record does."""
    agent: str = ""
    role: str = ""
    has_work: bool = False

    @classmethod
    def from_dict(cls, raw: Any) -> "Hook":
        raw = safe_dict(raw)
        return cls(
            agent=safe_str(raw.get("agent")),
            role=safe_str(raw.get("role")),
            has_work=bool(raw.get("has_work", False)),
        )


@dataclass
class Pool:
    """A project container (a "rig") with its workers and infrastructure."""
    name: str = ""
    workers: list[str] = field(default_factory=list)
    worker_count: int = 0
    crews: list[str] = field(default_factory=list)
    crew_count: int = 0
    has_witness: bool = False
    has_refinery: bool = False
    hooks: list[Hook] = field(default_factory=list)
    agents: list[Agent] = field(default_factory=list)
    active_hooks: int = 0

    @classmethod
    def from_dict(cls, raw: Any) -> "Pool":
        raw = safe_dict(raw)
        return cls(
            name=safe_str(raw.get("name")),
            workers=[safe_str(item) for item in safe_list(raw.get("polecats"))],
            worker_count=safe_int(raw.get("polecat_count")),
            crews=[safe_str(item) for item in safe_list(raw.get("crews"))],
            crew_count=safe_int(raw.get("crew_count")),
            has_witness=bool(raw.get("has_witness", False)),
            has_refinery=bool(raw.get("has_refinery", False)),
            hooks=[Hook.from_dict(item) for item in object_list(raw.get("hooks"), field="hooks")],
            agents=[Agent.from_dict(item) for item in object_list(raw.get("agents"), field="agents")],
            active_hooks=safe_int(raw.get("active_hooks")),
        )


@dataclass
class Summary:
    pool_count: int = 0
    worker_count: int = 0
    crew_count: int = 0
    witness_count: int = 0
    refinery_count: int = 0
    active_hooks: int = 0

    @classmethod
    def from_dict(cls, raw: Any) -> "Summary":
        raw = safe_dict(raw)
        return cls(
            pool_count=safe_int(raw.get("rig_count")),
            worker_count=safe_int(raw.get("polecat_count")),
            crew_count=safe_int(raw.get("crew_count")),
            witness_count=safe_int(raw.get("witness_count")),
            refinery_count=safe_int(raw.get("refinery_count")),
            active_hooks=safe_int(raw.get("active_hooks")),
        )


@dataclass
class WorkspaceStatus:
    name: str = ""
    location: str = ""
    overseer: Overseer = field(default_factory=Overseer)
    agents: list[Agent] = field(default_factory=list)
    pools: list[Pool] = field(default_factory=list)
    summary: Summary = field(default_factory=Summary)

    @classmethod
    def from_dict(cls, raw: Any) -> "WorkspaceStatus":
        raw = safe_dict(raw)
        return cls(
            name=safe_str(raw.get("name")),
            location=safe_str(raw.get("location")),
            overseer=Overseer.from_dict(raw.get("overseer")),
            agents=[Agent.from_dict(item) for item in object_list(raw.get("agents"), field="agents")],
            pools=[Pool.from_dict(item) for item in object_list(raw.get("rigs"), field="rigs")],
            summary=Summary.from_dict(raw.get("summary")),
        )

    def pool(self, name: str) -> Pool | None:
        for pool in self.pools:
            if pool.name == name:
                return pool
        return None


# ---------------------------------------------------------------------------
# Workers, batches, merge queues
# ---------------------------------------------------------------------------

@dataclass
class Worker:
    pool: str = ""
    name: str = ""
    state: str = ""
    session_running: bool = False

    @classmethod
    def from_dict(cls, raw: Any) -> "Worker":
        raw = safe_dict(raw)
        return cls(
            pool=safe_str(raw.get("rig")),
            name=safe_str(raw.get("name")),
            state=safe_str(raw.get("state")),
            session_running=bool(raw.get("session_running", False)),
        )


@dataclass
class TrackedIssue:
    id: str = ""
    title: str = ""
    status: str = ""
    assignee: str = ""
    worker: str = ""
    worker_age: str = ""

    @classmethod
    def from_dict(cls, raw: Any) -> "TrackedIssue":
        raw = safe_dict(raw)
        return cls(
            id=safe_str(raw.get("id")),
            title=safe_str(raw.get("title")),
            status=safe_str(raw.get("status")),
            assignee=safe_str(raw.get("assignee")),
            worker=safe_str(raw.get("worker")),
            worker_age=safe_str(raw.get("worker_age")),
        )


def _progress(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return completed * 100 // total


@dataclass
class Batch:
    """A convoy: related work items tracked together."""
    id: str = ""
    title: str = ""
    status: str = ""
    created_at: datetime | None = None
    completed: int = 0
    total: int = 0
    tracked: list[TrackedIssue] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Any) -> "Batch":
        raw = safe_dict(raw)
        return cls(
            id=safe_str(raw.get("id")),
            title=safe_str(raw.get("title")),
            status=safe_str(raw.get("status")),
            created_at=parse_timestamp(raw.get("created_at")),
            completed=safe_int(raw.get("completed")),
            total=safe_int(raw.get("total")),
            tracked=[TrackedIssue.from_dict(item) for item in object_list(raw.get("tracked"), field="tracked")],
        )

    def progress(self) -> int:
        """Completion percentage, 0 for an empty batch."""
        return _progress(self.completed, self.total)

    def is_active(self) -> bool:
        return self.status == "open"

    def is_landed(self) -> bool:
        return self.status in {"closed", "landed"}

    def has_active_work(self) -> bool:
        return any(item.status in ACTIVE_WORK_STATUSES for item in self.tracked)


@dataclass
class BatchStatus:
    id: str = ""
    title: str = ""
    status: str = ""
    completed: int = 0
    total: int = 0
    tracked: list[TrackedIssue] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Any) -> "BatchStatus":
        raw = safe_dict(raw)
        return cls(
            id=safe_str(raw.get("id")),
            title=safe_str(raw.get("title")),
            status=safe_str(raw.get("status")),
            completed=safe_int(raw.get("completed")),
            total=safe_int(raw.get("total")),
            tracked=[TrackedIssue.from_dict(item) for item in object_list(raw.get("tracked"), field="tracked")],
        )

    def progress(self) -> int:
        return _progress(self.completed, self.total)


@dataclass
class MergeRequest:
    id: str = ""
    title: str = ""
    status: str = ""
    worker: str = ""
    branch: str = ""
    priority: int = 0
    has_conflicts: bool = False
    needs_rebase: bool = False
    conflict_info: str = ""
    last_checked: str = ""

    @classmethod
    def from_dict(cls, raw: Any) -> "MergeRequest":
        raw = safe_dict(raw)
        return cls(
            id=safe_str(raw.get("id")),
            title=safe_str(raw.get("title")),
            status=safe_str(raw.get("status")),
            worker=safe_str(raw.get("worker")),
            branch=safe_str(raw.get("branch")),
            priority=safe_int(raw.get("priority")),
            has_conflicts=bool(raw.get("has_conflicts", False)),
            needs_rebase=bool(raw.get("needs_rebase", False)),
            conflict_info=safe_str(raw.get("conflict_info")),
            last_checked=safe_str(raw.get("last_checked")),
        )


# ---------------------------------------------------------------------------
# Issues (bd)
# ---------------------------------------------------------------------------

@dataclass
class Issue:
    id: str = ""
    title: str = ""
    description: str = ""
    status: str = ""
    priority: int = 0
    issue_type: str = ""
    assignee: str = ""
    created_at: datetime | None = None
    created_by: str = ""
    updated_at: datetime | None = None
    labels: list[str] = field(default_factory=list)
    dependency_count: int = 0
    dependent_count: int = 0
    ephemeral: bool = False

    @classmethod
    def from_dict(cls, raw: Any) -> "Issue":
        raw = safe_dict(raw)
        return cls(
            id=safe_str(raw.get("id")),
            title=safe_str(raw.get("title")),
            description=safe_str(raw.get("description")),
            status=safe_str(raw.get("status")),
            priority=safe_int(raw.get("priority")),
            issue_type=safe_str(raw.get("issue_type")),
            assignee=safe_str(raw.get("assignee")),
            created_at=parse_timestamp(raw.get("created_at")),
            created_by=safe_str(raw.get("created_by")),
            updated_at=parse_timestamp(raw.get("updated_at")),
            labels=[safe_str(item) for item in safe_list(raw.get("labels"))],
            dependency_count=safe_int(raw.get("dependency_count")),
            dependent_count=safe_int(raw.get("dependent_count")),
            ephemeral=bool(raw.get("ephemeral", False)),
        )

    @property
    def counts_as_active_work(self) -> bool:
        """Ephemeral and message-type issues never count as claimed work."""
        return not self.ephemeral and self.issue_type != "message"


@dataclass
class IssueDependency:
    id: str = ""
    title: str = ""
    status: str = ""
    issue_type: str = ""
    priority: int = 0
    updated_at: datetime | None = None


@dataclass
class IssueDependencies:
    issue_id: str
    blocked_by: list[IssueDependency] = field(default_factory=list)
    blocking: list[IssueDependency] = field(default_factory=list)
    loaded_at: datetime | None = None
    load_error: str = ""


@dataclass
class Comment:
    id: str = ""
    author: str = ""
    text: str = ""
    created_at: datetime | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> "Comment":
        raw = safe_dict(raw)
        return cls(
            id=safe_str(raw.get("id")),
            author=safe_str(raw.get("author")),
            text=safe_str(raw.get("text") or raw.get("body")),
            created_at=parse_timestamp(raw.get("created_at")),
        )


@dataclass
class IssueComments:
    issue_id: str
    comments: list[Comment] = field(default_factory=list)
    loaded_at: datetime | None = None
    load_error: str = ""


@dataclass
class AuditEntry:
    timestamp: datetime | None = None
    source: str = ""
    type: str = ""
    actor: str = ""
    summary: str = ""

    @classmethod
    def from_dict(cls, raw: Any) -> "AuditEntry":
        raw = safe_dict(raw)
        return cls(
            timestamp=parse_timestamp(raw.get("timestamp")),
            source=safe_str(raw.get("source")),
            type=safe_str(raw.get("type")),
            actor=safe_str(raw.get("actor")),
            summary=safe_str(raw.get("summary")),
        )


# ---------------------------------------------------------------------------
# Mail
# ---------------------------------------------------------------------------

@dataclass
class MailMessage:
    id: str = ""
    sender: str = ""
    to: str = ""
    subject: str = ""
    body: str = ""
    timestamp: datetime | None = None
    read: bool = False
    priority: str = ""
    type: str = ""
    thread_id: str = ""

    @classmethod
    def from_dict(cls, raw: Any) -> "MailMessage":
        raw = safe_dict(raw)
        return cls(
            id=safe_str(raw.get("id")),
            sender=safe_str(raw.get("from")),
            to=safe_str(raw.get("to")),
            subject=safe_str(raw.get("subject")),
            body=safe_str(raw.get("body")),
            timestamp=parse_timestamp(raw.get("timestamp")),
            read=bool(raw.get("read", False)),
            priority=safe_str(raw.get("priority")),
            type=safe_str(raw.get("type")),
            thread_id=safe_str(raw.get("thread_id")),
        )


# ---------------------------------------------------------------------------
# Lifecycle events, health report, operational state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LifecycleEvent:
    timestamp: datetime
    event_type: str
    agent: str
    message: str


@dataclass
class LifecycleLog:
    events: list[LifecycleEvent] = field(default_factory=list)
    loaded_at: datetime | None = None


class CheckStatus(str, Enum):
    PASSED = "passed"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class DoctorCheck:
    name: str
    status: CheckStatus
    message: str = ""
    details: list[str] = field(default_factory=list)
    suggest_fix: str = ""


@dataclass
class DoctorReport:
    checks: list[DoctorCheck] = field(default_factory=list)
    total_checks: int = 0
    passed_count: int = 0
    warning_count: int = 0
    error_count: int = 0
    loaded_at: datetime | None = None

    def has_issues(self) -> bool:
        return self.error_count > 0 or self.warning_count > 0

    def errors(self) -> list[DoctorCheck]:
        return [check for check in self.checks if check.status == CheckStatus.ERROR]

    def warnings(self) -> list[DoctorCheck]:
        return [check for check in self.checks if check.status == CheckStatus.WARNING]


@dataclass
class OperationalState:
    degraded_mode: bool = False
    degraded_reason: str = ""
    degraded_action: str = ""
    patrol_muted: bool = False
    watchdog_healthy: bool = True
    watchdog_reason: str = ""
    watchdog_action: str = ""
    last_deacon_heartbeat: datetime | None = None
    last_witness_heartbeat: dict[str, datetime] = field(default_factory=dict)
    last_refinery_heartbeat: dict[str, datetime] = field(default_factory=dict)
    issues: list[str] = field(default_factory=list)

    def has_issues(self) -> bool:
        return self.degraded_mode or self.patrol_muted or not self.watchdog_healthy or bool(self.issues)

    def summary(self) -> str:
        if self.degraded_mode:
            return "DEGRADED"
        if self.patrol_muted:
            return "PATROL MUTED"
        if not self.watchdog_healthy:
            return "WATCHDOG UNHEALTHY"
        if self.issues:
            return "ISSUES DETECTED"
        return "HEALTHY"


# ---------------------------------------------------------------------------
# Identity, routes, worktrees, plugins
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CommitInfo:
    hash: str
    subject: str
    author: str
    date: str


@dataclass(frozen=True)
class BeadInfo:
    id: str
    title: str
    status: str
    updated_at: datetime | None


@dataclass
class Identity:
    name: str = ""
    email: str = ""
    username: str = ""
    source: str = ""
    last_commits: list[CommitInfo] = field(default_factory=list)
    last_beads: list[BeadInfo] = field(default_factory=list)


@dataclass(frozen=True)
class BeadRoute:
    """Maps an issue-id prefix to the directory that holds its tracker."""
    prefix: str
    location: str = ""
    pool: str = ""


@dataclass
class Routes:
    entries: dict[str, BeadRoute] = field(default_factory=dict)

    def route_for(self, issue_id: str) -> BeadRoute | None:
        """Longest registered prefix of *issue_id*, if any."""
        best: BeadRoute | None = None
        for prefix, route in self.entries.items():
            if issue_id.startswith(prefix) and (best is None or len(prefix) > len(best.prefix)):
                best = route
        return best


@dataclass
class Worktree:
    pool: str
    source_pool: str
    source_name: str
    path: str
    branch: str = ""
    clean: bool = False
    status: str = ""


@dataclass
class Plugin:
    name: str
    path: str
    scope: str
    enabled: bool = True
    title: str = ""
    description: str = ""
    gate_type: str = ""
    schedule: str = ""
    last_run: datetime | None = None
    last_error: str = ""
    has_error: bool = False


# ---------------------------------------------------------------------------
# Per-source load errors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LoadError:
    source: str
    command: str
    error: str
    occurred_at: datetime

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["occurred_at"] = self.occurred_at.isoformat()
        return payload
