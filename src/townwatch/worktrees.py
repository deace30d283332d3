"""Cross-pool worktree inventory under ``<root>/<pool>/crew``."""

from __future__ import annotations

import threading
from pathlib import Path

from .commands import CommandRunner
from .errors import CommandCancelled, CommandError
from .models import Worktree


def split_worktree_name(name: str) -> tuple[str, str]:
    """``"gastown-joe"`` -> ``("gastown", "joe")``; no dash -> ``("", name)``."""
    source_pool, sep, source_name = name.partition("-")
    if not sep:
        return "", name
    return source_pool, source_name


def worktree_state(
    path: Path,
    runner: CommandRunner,
    cancel: threading.Event | None = None,
) -> tuple[str, str, bool]:
    """Return (branch, status, clean) for a checked-out worktree."""
    try:
        result = runner.run(["git", "-C", str(path), "rev-parse", "--abbrev-ref", "HEAD"], cwd=path, cancel=cancel)
        branch = result.stdout.strip()
    except CommandCancelled:
        raise
    except CommandError:
        branch = "unknown"

    try:
        result = runner.run(["git", "-C", str(path), "status", "--porcelain"], cwd=path, cancel=cancel)
    except CommandCancelled:
        raise
    except CommandError:
        return branch, "unknown", False

    changed = [line for line in result.stdout.strip().splitlines() if line.strip()]
    if not changed:
        return branch, "clean", True
    return branch, f"{len(changed)} uncommitted", False


def load_worktrees(
    root: Path | str,
    pools: list[str],
    runner: CommandRunner,
    cancel: threading.Event | None = None,
) -> list[Worktree]:
    """Crew directories whose ``.git`` is a file, i.e. linked worktrees.

    Pools without a readable crew directory contribute nothing.
    """
    worktrees: list[Worktree] = []
    for pool in pools:
        crew_dir = Path(root) / pool / "crew"
        if not crew_dir.is_dir():
            continue
        try:
            entries = sorted(crew_dir.iterdir())
        except OSError:
            continue
        for entry in entries:
            if not entry.is_dir():
                continue
            if not (entry / ".git").is_file():
                continue
            source_pool, source_name = split_worktree_name(entry.name)
            branch, status, clean = worktree_state(entry, runner, cancel)
            worktrees.append(
                Worktree(
                    pool=pool,
                    source_pool=source_pool,
                    source_name=source_name,
                    path=str(entry),
                    branch=branch,
                    clean=clean,
                    status=status,
                )
            )
    return worktrees
