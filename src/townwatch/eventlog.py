"""Reader for the append-only lifecycle log at ``<root>/logs/town.log``."""

from __future__ import annotations

import re
from collections import deque
from datetime import datetime, timezone
from pathlib import Path

from .errors import SourceError
from .models import LifecycleEvent, LifecycleLog

DEFAULT_LIMIT = 100

_LINE = re.compile(r"^(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}) \[(\w+)\] (.+)$")


def lifecycle_log_path(root: Path | str) -> Path:
    return Path(root) / "logs" / "town.log"


def parse_lifecycle_line(line: str) -> LifecycleEvent | None:
    """Parse ``YYYY-MM-DD HH:MM:SS [type] message``; None when it does not match.

    The agent is the first whitespace-separated token of the message.
    Timestamps carry no zone in the file and are read as UTC.
    """
    match = _LINE.match(line.rstrip("\r\n"))
    if match is None:
        return None
    try:
        stamp = datetime.strptime(match.group(1), "%Y-%m-%d %H:%M:%S").replace(tzinfo=timezone.utc)
    except ValueError:
        return None
    message = match.group(3)
    tokens = message.split(None, 1)
    return LifecycleEvent(
        timestamp=stamp,
        event_type=match.group(2),
        agent=tokens[0] if tokens else "",
        message=message,
    )


def load_lifecycle_log(root: Path | str, limit: int = DEFAULT_LIMIT) -> LifecycleLog:
    """Parse the last *limit* lines of the log, most recent first.

    A missing log is an empty result; unreadable files raise SourceError.
    """
    path = lifecycle_log_path(root)
    if limit <= 0 or not path.exists():
        return LifecycleLog(events=[], loaded_at=datetime.now(timezone.utc))
    try:
        with path.open("r", encoding="utf-8", errors="replace") as handle:
            tail = deque(handle, maxlen=limit)
    except OSError as exc:
        raise SourceError(f"reading town.log: {exc}") from exc

    events: list[LifecycleEvent] = []
    for line in reversed(tail):
        event = parse_lifecycle_line(line)
        if event is not None:
            events.append(event)
    return LifecycleLog(events=events, loaded_at=datetime.now(timezone.utc))
