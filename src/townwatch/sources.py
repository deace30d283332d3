"""Readers for the town's command-line sources (gt, bd, git).

Every method runs one or more commands with the town root as working
directory and decodes the JSON output into model records. Failures are
raised as ``SourceError``; the loader decides what to do with them.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from .commands import CommandRunner, SubprocessRunner
from .decoding import decode_json_body, object_list, parse_timestamp, safe_int, safe_str
from .errors import CommandError, DecodeError, SourceError
from .models import (
    AuditEntry,
    Batch,
    BatchStatus,
    BeadInfo,
    Comment,
    CommitInfo,
    Identity,
    Issue,
    IssueComments,
    IssueDependencies,
    IssueDependency,
    MailMessage,
    MergeRequest,
    Overseer,
    Worker,
    WorkspaceStatus,
)

_logger = logging.getLogger("townwatch.sources")

# git log fields separated by the ASCII unit separator, one commit per line
_GIT_LOG_FORMAT = "%h%x1f%s%x1f%an%x1f%aI"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TownReader:
    """CLI-backed source readers for one town root."""

    def __init__(self, root: Path | str, runner: CommandRunner | None = None) -> None:
        self.root = Path(root)
        self.runner = runner if runner is not None else SubprocessRunner()

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    def _run(self, argv: list[str], cancel: threading.Event | None) -> str:
        return self.runner.run(argv, cwd=self.root, cancel=cancel).stdout

    def _json(
        self,
        what: str,
        argv: list[str],
        expect: type,
        cancel: threading.Event | None,
    ) -> Any:
        try:
            body = self._run(argv, cancel)
            return decode_json_body(body, program=argv[0], expect=expect)
        except (CommandError, DecodeError) as exc:
            raise SourceError(f"loading {what}: {exc}") from exc

    def _build(self, what: str, program: str, build: Callable[[Any], Any], payload: Any) -> Any:
        try:
            return build(payload)
        except DecodeError as exc:
            raise SourceError(f"loading {what}: parsing {program} output: {exc}") from exc

    def _json_list(
        self,
        what: str,
        argv: list[str],
        factory: Callable[[Any], Any],
        cancel: threading.Event | None,
    ) -> list[Any]:
        payload = self._json(what, argv, list, cancel)
        return self._build(
            what, argv[0], lambda items: [factory(item) for item in object_list(items, field="item")], payload
        )

    # ------------------------------------------------------------------
    # workspace, workers, batches
    # ------------------------------------------------------------------

    def load_workspace_status(self, cancel: threading.Event | None = None) -> WorkspaceStatus:
        payload = self._json("town status", ["gt", "status", "--json", "--fast"], dict, cancel)
        return self._build("town status", "gt", WorkspaceStatus.from_dict, payload)

    def load_workers(self, cancel: threading.Event | None = None) -> list[Worker]:
        return self._json_list(
            "polecats", ["gt", "polecat", "list", "--all", "--json"], Worker.from_dict, cancel
        )

    def load_batches(self, cancel: threading.Event | None = None) -> list[Batch]:
        return self._json_list("convoys", ["gt", "convoy", "list", "--json"], Batch.from_dict, cancel)

    def load_closed_batches(self, cancel: threading.Event | None = None) -> list[Batch]:
        return self._json_list(
            "closed convoys",
            ["gt", "convoy", "list", "--status=closed", "--json"],
            Batch.from_dict,
            cancel,
        )

    def load_batch_detail(self, batch_id: str, cancel: threading.Event | None = None) -> Batch:
        payload = self._json(
            f"convoy {batch_id}", ["gt", "convoy", "status", batch_id, "--json"], dict, cancel
        )
        return self._build(f"convoy {batch_id}", "gt", Batch.from_dict, payload)

    def load_batches_with_details(self, cancel: threading.Event | None = None) -> list[Batch]:
        """Batch list with per-batch detail, one concurrent call per batch.

        A batch whose detail call fails keeps its list entry.
        """
        batches = self.load_batches(cancel)
        if not batches:
            return batches

        detailed: list[Batch] = list(batches)
        lock = threading.Lock()

        def _detail(index: int, batch_id: str) -> None:
            try:
                detail = self.load_batch_detail(batch_id, cancel)
            except SourceError as exc:
                _logger.debug(f"convoy detail fallback for {batch_id}: {exc}")
                return
            with lock:
                detailed[index] = detail

        _run_all(
            [(f"convoy-detail-{batch.id}", _detail, (index, batch.id)) for index, batch in enumerate(batches)]
        )
        return detailed

    def load_batch_status(self, batch_id: str, cancel: threading.Event | None = None) -> BatchStatus:
        payload = self._json(
            f"convoy status for {batch_id}",
            ["gt", "convoy", "status", batch_id, "--json"],
            dict,
            cancel,
        )
        return self._build(f"convoy status for {batch_id}", "gt", BatchStatus.from_dict, payload)

    def load_all_batch_statuses(
        self,
        batches: list[Batch],
        cancel: threading.Event | None = None,
    ) -> tuple[dict[str, BatchStatus], list[SourceError]]:
        """Detailed status per batch; failures are returned, not raised."""
        statuses: dict[str, BatchStatus] = {}
        failures: list[SourceError] = []
        lock = threading.Lock()

        def _status(batch_id: str) -> None:
            try:
                status = self.load_batch_status(batch_id, cancel)
            except SourceError as exc:
                with lock:
                    failures.append(exc)
                return
            with lock:
                statuses[batch_id] = status

        _run_all([(f"convoy-status-{batch.id}", _status, (batch.id,)) for batch in batches])
        return statuses, failures

    def load_merge_queue(self, pool: str, cancel: threading.Event | None = None) -> list[MergeRequest]:
        return self._json_list(
            f"merge queue for {pool}", ["gt", "mq", "list", pool, "--json"], MergeRequest.from_dict, cancel
        )

    # ------------------------------------------------------------------
    # issues
    # ------------------------------------------------------------------

    def _issues(self, what: str, status: str | None, cancel: threading.Event | None) -> list[Issue]:
        argv = ["bd", "list", "--json"]
        if status:
            argv += ["--status", status]
        argv += ["--limit", "0"]
        return self._json_list(what, argv, Issue.from_dict, cancel)

    def load_issues(self, cancel: threading.Event | None = None) -> list[Issue]:
        return self._issues("issues", None, cancel)

    def load_open_issues(self, cancel: threading.Event | None = None) -> list[Issue]:
        return self._issues("open issues", "open", cancel)

    def load_hooked_issues(self, cancel: threading.Event | None = None) -> list[Issue]:
        return self._issues("hooked issues", "hooked", cancel)

    def load_in_progress_issues(self, cancel: threading.Event | None = None) -> list[Issue]:
        return self._issues("in-progress issues", "in_progress", cancel)

    def load_active_issues(self, cancel: threading.Event | None = None) -> list[Issue]:
        """Hooked plus in-progress issues, first occurrence per id kept."""
        active: list[Issue] = []
        seen: set[str] = set()
        for issue in self.load_hooked_issues(cancel) + self.load_in_progress_issues(cancel):
            if issue.id in seen:
                continue
            seen.add(issue.id)
            active.append(issue)
        return active

    def load_issue_dependencies(
        self, issue_id: str, cancel: threading.Event | None = None
    ) -> IssueDependencies:
        result = IssueDependencies(issue_id=issue_id, loaded_at=_now())
        try:
            body = self._run(["bd", "dep", "list", issue_id], cancel)
        except CommandError as exc:
            result.load_error = f"listing dependencies: {exc}"
            return result
        try:
            rows = object_list(decode_json_body(body, program="bd", expect=list), field="item")
        except DecodeError as exc:
            result.load_error = f"parsing dependencies: {exc}"
            return result

        for row in rows:
            dependency = IssueDependency(
                id=safe_str(row.get("id")),
                title=safe_str(row.get("title")),
                status=safe_str(row.get("status")),
                issue_type=safe_str(row.get("issue_type")),
                priority=safe_int(row.get("priority")),
                updated_at=parse_timestamp(row.get("updated_at")),
            )
            kind = safe_str(row.get("dependency_type"))
            if kind == "blocks":
                result.blocked_by.append(dependency)
            elif kind == "blocked_by":
                result.blocking.append(dependency)
        return result

    def add_dependency(
        self, blocked_id: str, blocker_id: str, cancel: threading.Event | None = None
    ) -> None:
        self.runner.run(["bd", "dep", "add", blocked_id, blocker_id], cwd=self.root, cancel=cancel)

    def remove_dependency(
        self, blocked_id: str, blocker_id: str, cancel: threading.Event | None = None
    ) -> None:
        self.runner.run(["bd", "dep", "remove", blocked_id, blocker_id], cwd=self.root, cancel=cancel)

    def load_issue_comments(self, issue_id: str, cancel: threading.Event | None = None) -> IssueComments:
        result = IssueComments(issue_id=issue_id, loaded_at=_now())
        try:
            result.comments = self._json_list(
                "comments", ["bd", "comments", issue_id, "--json"], Comment.from_dict, cancel
            )
        except SourceError as exc:
            result.load_error = str(exc)
        return result

    def add_comment(self, issue_id: str, text: str, cancel: threading.Event | None = None) -> None:
        self.runner.run(["bd", "comments", "add", issue_id, text], cwd=self.root, cancel=cancel)

    # ------------------------------------------------------------------
    # mail, audit, identity
    # ------------------------------------------------------------------

    def load_mail(self, cancel: threading.Event | None = None) -> list[MailMessage]:
        return self._json_list("mail", ["gt", "mail", "inbox", "--json"], MailMessage.from_dict, cancel)

    def load_audit_timeline(
        self, actor: str = "", limit: int = 0, cancel: threading.Event | None = None
    ) -> list[AuditEntry]:
        argv = ["gt", "audit", "--json"]
        if actor:
            argv.append(f"--actor={actor}")
        if limit > 0:
            argv += ["--limit", str(limit)]
        return self._json_list(f"audit timeline for {actor}", argv, AuditEntry.from_dict, cancel)

    def load_recent_commits(self, limit: int = 5, cancel: threading.Event | None = None) -> list[CommitInfo]:
        """Most recent commits in the town root; any failure yields []."""
        try:
            body = self._run(["git", "log", f"-n{limit}", f"--pretty=format:{_GIT_LOG_FORMAT}"], cancel)
        except CommandError as exc:
            _logger.debug(f"git log unavailable: {exc}")
            return []
        commits: list[CommitInfo] = []
        for line in body.splitlines():
            fields = line.split("\x1f")
            if len(fields) != 4:
                continue
            commits.append(CommitInfo(hash=fields[0], subject=fields[1], author=fields[2], date=fields[3]))
        return commits

    def load_identity(
        self,
        overseer: Overseer | None,
        issues: list[Issue],
        *,
        limit: int = 5,
        cancel: threading.Event | None = None,
    ) -> Identity:
        identity = Identity()
        if overseer is not None:
            identity.name = overseer.name
            identity.email = overseer.email
            identity.username = overseer.username
            identity.source = overseer.source
        identity.last_commits = self.load_recent_commits(limit, cancel)
        identity.last_beads = recent_beads(issues, limit)
        return identity


def recent_beads(issues: list[Issue], limit: int = 5) -> list[BeadInfo]:
    """The *limit* most recently updated issues; ties keep input order."""
    ordered = sorted(issues, key=lambda issue: issue.updated_at or _EPOCH, reverse=True)
    return [
        BeadInfo(id=issue.id, title=issue.title, status=issue.status, updated_at=issue.updated_at)
        for issue in ordered[:limit]
    ]


def _run_all(jobs: list[tuple[str, Callable[..., None], tuple[Any, ...]]]) -> None:
    threads = [threading.Thread(target=target, args=args, name=name, daemon=True) for name, target, args in jobs]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
