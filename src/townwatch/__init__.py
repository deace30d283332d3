"""townwatch: data acquisition and reconciliation for the town dashboard."""

from .config import TownConfig
from .errors import (
    CommandCancelled,
    CommandError,
    DecodeError,
    SourceError,
    TownwatchError,
    ValidationError,
)
from .loader import SnapshotLoader
from .reconcile import reconcile_snapshot
from .snapshot import Snapshot
from .sources import TownReader
from .store import Store

__version__ = "0.1.0"

__all__ = [
    'CommandCancelled',
    'CommandError',
    'DecodeError',
    'Snapshot',
    'SnapshotLoader',
    'SourceError',
    'Store',
    'TownConfig',
    'TownReader',
    'TownwatchError',
    'ValidationError',
    'reconcile_snapshot',
]
