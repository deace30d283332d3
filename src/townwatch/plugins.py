"""Plugin inventory for the town and each pool.

Layout per plugin directory::

    plugins/<name>/plugin.md     optional, "+++" delimited front matter
    plugins/<name>/.disabled     marker
    plugins/<name>/.last_error   text of the last failure
    plugins/<name>/.last_run     RFC 3339 timestamp
"""

from __future__ import annotations

from pathlib import Path

from .decoding import parse_timestamp
from .models import Plugin

TOWN_SCOPE = "town"

_SCHEDULE_KEYS = {"schedule", "cooldown", "cron"}


def parse_front_matter(text: str) -> dict[str, str]:
    """``key = "value"`` pairs between the first two ``+++`` lines."""
    lines: list[str] = []
    inside = False
    for line in text.splitlines():
        if line == "+++":
            if inside:
                break
            inside = True
            continue
        if inside:
            lines.append(line)

    values: dict[str, str] = {}
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        values[key.strip()] = value.strip().strip("\"'")
    return values


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None


def load_plugin(path: Path, scope: str) -> Plugin:
    plugin = Plugin(name=path.name, path=str(path), scope=scope)
    if (path / ".disabled").exists():
        plugin.enabled = False

    last_error = _read_text(path / ".last_error")
    if last_error is not None:
        plugin.last_error = last_error.strip()
        plugin.has_error = bool(plugin.last_error)

    last_run = _read_text(path / ".last_run")
    if last_run is not None:
        plugin.last_run = parse_timestamp(last_run.strip())

    descriptor = _read_text(path / "plugin.md")
    if descriptor is not None:
        for key, value in parse_front_matter(descriptor).items():
            if key == "title":
                plugin.title = value
            elif key == "description":
                plugin.description = value
            elif key == "gate":
                plugin.gate_type = value
            elif key in _SCHEDULE_KEYS:
                plugin.schedule = value

    if not plugin.title:
        plugin.title = path.name
    return plugin


def scan_plugin_dir(directory: Path, scope: str) -> list[Plugin]:
    if not directory.is_dir():
        return []
    return [load_plugin(entry, scope) for entry in sorted(directory.iterdir()) if entry.is_dir()]


def load_plugins(root: Path | str, pools: list[str]) -> list[Plugin]:
    """Town plugins first, then each pool's in the given order."""
    root = Path(root)
    plugins = scan_plugin_dir(root / "plugins", TOWN_SCOPE)
    for pool in pools:
        plugins.extend(scan_plugin_dir(root / pool / "plugins", pool))
    return plugins
