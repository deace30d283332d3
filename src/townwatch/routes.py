"""Issue-prefix routing table read from ``<root>/.beads/routes.jsonl``."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from .decoding import safe_str
from .errors import SourceError
from .models import BeadRoute, Routes


def routes_path(root: Path | str) -> Path:
    return Path(root) / ".beads" / "routes.jsonl"


def parse_routes(text: str) -> Routes:
    """One JSON object per line; the first record for a prefix is kept."""
    return _parse_lines(text.splitlines())


def _decoded_lines(data: bytes) -> Iterable[str]:
    for raw in data.splitlines():
        try:
            yield raw.decode("utf-8")
        except UnicodeDecodeError:
            continue


def _parse_lines(lines: Iterable[str]) -> Routes:
    routes = Routes()
    for line in lines:
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(record, dict):
            continue
        prefix = safe_str(record.get("prefix")).strip()
        if not prefix or prefix in routes.entries:
            continue
        routes.entries[prefix] = BeadRoute(
            prefix=prefix,
            location=safe_str(record.get("location")),
            pool=safe_str(record.get("rig")),
        )
    return routes


def load_routes(root: Path | str) -> Routes:
    path = routes_path(root)
    if not path.exists():
        return Routes()
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise SourceError(f"reading routes: {exc}") from exc
    return _parse_lines(_decoded_lines(data))
