"""Overlay tracker-claimed work onto the workspace status.

The issue tracker is authoritative for who holds which issue; ``gt status``
can lag behind it. ``reconcile_snapshot`` copies the tracker's view onto
agents, hooks and the active-hook counters. It never raises and running it
twice gives the same result as running it once.
"""

from __future__ import annotations

from .models import Agent, Hook, Issue, Pool
from .snapshot import Snapshot

WORKER_SEGMENT = "polecats"


def split_agent_address(address: str) -> list[str]:
    """Split on the first ``/``; an address without one is a single segment."""
    head, sep, tail = address.partition("/")
    if not sep:
        return [address]
    return [head, tail]


def worker_address(address: str) -> str | None:
    """``pool/name`` -> ``pool/polecats/name``; None for a single segment."""
    parts = split_agent_address(address)
    if len(parts) != 2:
        return None
    return f"{parts[0]}/{WORKER_SEGMENT}/{parts[1]}"


def _hook_addresses(hook: Hook) -> list[str]:
    alternate = worker_address(hook.agent)
    return [hook.agent] if alternate is None else [hook.agent, alternate]


def _claim(agent: Agent, issue: Issue) -> None:
    agent.has_work = True
    agent.first_subject = issue.title
    agent.hooked_bead_id = issue.id
    agent.hooked_status = issue.status
    agent.hooked_at = issue.updated_at


def _pool_active_hooks(pool: Pool, by_assignee: dict[str, Issue], counted: list[Issue]) -> int:
    active = 0
    declared: set[str] = set()
    for hook in pool.hooks:
        addresses = _hook_addresses(hook)
        declared.update(addresses)
        if any(address in by_assignee for address in addresses):
            hook.has_work = True
            active += 1

    prefix = pool.name + "/"
    for issue in counted:
        if issue.assignee.startswith(prefix) and issue.assignee not in declared:
            active += 1
    return active


def reconcile_snapshot(snapshot: Snapshot) -> None:
    status = snapshot.workspace
    if status is None:
        return

    active = snapshot.active_issues if snapshot.active_issues_loaded else []
    counted = [issue for issue in active if issue.counts_as_active_work]
    if snapshot.active_issues_loaded:
        status.summary.active_hooks = len(counted)

    if not active:
        return

    by_assignee: dict[str, Issue] = {}
    for issue in active:
        if issue.assignee:
            by_assignee[issue.assignee] = issue

    for agent in status.agents:
        issue = by_assignee.get(agent.address)
        if issue is not None:
            _claim(agent, issue)

    for pool in status.pools:
        for agent in pool.agents:
            issue = by_assignee.get(agent.address)
            if issue is not None:
                _claim(agent, issue)
        pool.active_hooks = _pool_active_hooks(pool, by_assignee, counted)
