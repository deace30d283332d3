"""Runtime configuration, resolved once from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .decoding import safe_int

DEFAULT_COMMAND_TIMEOUT_SEC = 60.0
DEFAULT_LIFECYCLE_LIMIT = 100
DEFAULT_RECENT_LIMIT = 5


def _flag(value: str | None) -> bool:
    return bool(str(value or "").strip())


def _float_value(value: str | None, default: float) -> float:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class TownConfig:
    root: Path
    command_timeout_sec: float = DEFAULT_COMMAND_TIMEOUT_SEC
    refresh_interval_sec: float = 0.0
    lifecycle_limit: int = DEFAULT_LIFECYCLE_LIMIT
    recent_limit: int = DEFAULT_RECENT_LIMIT
    degraded_mode: bool = False
    patrol_muted: bool = False

    @classmethod
    def from_root(cls, root: Path | str, env: Mapping[str, str] | None = None) -> "TownConfig":
        env = os.environ if env is None else env
        timeout = _float_value(env.get("TOWNWATCH_COMMAND_TIMEOUT_SEC"), DEFAULT_COMMAND_TIMEOUT_SEC)
        interval = _float_value(env.get("TOWNWATCH_REFRESH_INTERVAL_SEC"), 0.0)
        limit = safe_int(env.get("TOWNWATCH_LIFECYCLE_LIMIT"), DEFAULT_LIFECYCLE_LIMIT)
        return cls(
            root=Path(root).expanduser().resolve(),
            command_timeout_sec=max(0.0, timeout),
            refresh_interval_sec=max(0.0, interval),
            lifecycle_limit=max(1, limit),
            degraded_mode=_flag(env.get("GT_DEGRADED")),
            patrol_muted=_flag(env.get("GT_PATROL_MUTED")),
        )

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "TownConfig":
        env = os.environ if env is None else env
        root = str(env.get("GT_ROOT", "")).strip() or os.getcwd()
        return cls.from_root(root, env)
