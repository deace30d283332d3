"""Pool settings, split across two JSON documents.

* ``<root>/mayor/rigs.json``: the shared registry; ``rigs.<pool>.git_url``
  and ``rigs.<pool>.beads.prefix``.
* ``<root>/<pool>/mayor/rig/settings/config.json``: theme, worker cap and
  merge-queue options.

Writes are read-merge-write so fields this module does not know about
survive.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .decoding import safe_dict, safe_int, safe_str
from .errors import TownwatchError, ValidationError

DEFAULT_TEST_COMMAND = "go test ./..."


@dataclass
class MergeQueueConfig:
    enabled: bool = True
    run_tests: bool = True
    test_command: str = DEFAULT_TEST_COMMAND

    @classmethod
    def from_dict(cls, raw: Any) -> "MergeQueueConfig":
        raw = safe_dict(raw)
        return cls(
            enabled=bool(raw.get("enabled", False)),
            run_tests=bool(raw.get("run_tests", False)),
            test_command=safe_str(raw.get("test_command")),
        )


@dataclass
class PoolSettings:
    name: str
    prefix: str = ""
    git_url: str = ""
    theme: str = ""
    max_workers: int = 0
    merge_queue: MergeQueueConfig = field(default_factory=MergeQueueConfig)

    def validate(self) -> None:
        """Raise ValidationError for the first field that is unusable.

        ``max_workers == 0`` means unlimited.
        """
        if not self.name.strip():
            raise ValidationError("name", "rig name is required")
        if not self.prefix.strip():
            raise ValidationError("prefix", "beads prefix is required")
        if self.max_workers < 0:
            raise ValidationError("max_workers", "must be zero (unlimited) or positive")
        if self.merge_queue.run_tests and not self.merge_queue.test_command.strip():
            raise ValidationError("test_command", "required when run_tests is enabled")


def registry_path(root: Path | str) -> Path:
    return Path(root) / "mayor" / "rigs.json"


def pool_config_path(root: Path | str, pool: str) -> Path:
    return Path(root) / pool / "mayor" / "rig" / "settings" / "config.json"


def _read_json(path: Path, *, required: bool = False) -> dict[str, Any]:
    """Read a settings object.

    Optional files that are missing or malformed read as ``{}``; a required
    file raises TownwatchError instead.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        if required:
            raise TownwatchError(f"reading {path.name}: {exc}") from exc
        return {}
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        if required:
            raise TownwatchError(f"parsing {path.name}: {exc}") from exc
        return {}
    if isinstance(payload, dict):
        return payload
    if required:
        raise TownwatchError(f"parsing {path.name}: expected an object")
    return {}


def _write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, indent=2) + "\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
    finally:
        if os.path.exists(temp_path):
            os.unlink(temp_path)


def load_pool_settings(root: Path | str, pool: str) -> PoolSettings:
    """Defaults, overlaid by the registry entry, then the pool-local file.

    Missing or malformed files leave the defaults in place.
    """
    settings = PoolSettings(name=pool)

    entry = safe_dict(safe_dict(_read_json(registry_path(root)).get("rigs")).get(pool))
    if entry:
        settings.git_url = safe_str(entry.get("git_url"))
        settings.prefix = safe_str(safe_dict(entry.get("beads")).get("prefix"))

    local = _read_json(pool_config_path(root, pool))
    if local:
        settings.theme = safe_str(local.get("theme"))
        settings.max_workers = safe_int(local.get("max_workers"))
        settings.merge_queue = MergeQueueConfig.from_dict(local.get("merge_queue"))
    return settings


def save_pool_settings(root: Path | str, settings: PoolSettings) -> None:
    """Validate, then update the registry prefix and the pool-local file.

    The registry must exist; a pool missing from it is left unregistered.
    """
    settings.validate()

    registry_file = registry_path(root)
    registry = _read_json(registry_file, required=True)

    rigs = registry.get("rigs")
    if isinstance(rigs, dict) and isinstance(rigs.get(settings.name), dict):
        entry = rigs[settings.name]
        beads = entry.get("beads")
        if not isinstance(beads, dict):
            beads = {}
            entry["beads"] = beads
        beads["prefix"] = settings.prefix
        _write_json_atomic(registry_file, registry)

    config_file = pool_config_path(root, settings.name)
    local = _read_json(config_file)
    if settings.theme:
        local["theme"] = settings.theme
    else:
        local.pop("theme", None)
    if settings.max_workers:
        local["max_workers"] = settings.max_workers
    else:
        local.pop("max_workers", None)
    local["merge_queue"] = asdict(settings.merge_queue)
    _write_json_atomic(config_file, local)
