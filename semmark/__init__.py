"""semmark package initialization."""

from __future__ import annotations

from .engine import (
    ClearDataRequest,
    Engine,
    MoreResultsRequest,
    SearchRequest,
    Stats,
    StatsRequest,
    SyncRequest,
    set_config_json,
    set_data_dir,
)
from .errors import IndexCorruptionError, SemmarkError, SnapshotError, StorageError

__all__ = [
    "__version__",
    "ClearDataRequest",
    "Engine",
    "IndexCorruptionError",
    "MoreResultsRequest",
    "SearchRequest",
    "SemmarkError",
    "SnapshotError",
    "Stats",
    "StatsRequest",
    "StorageError",
    "SyncRequest",
    "get_version",
    "set_config_json",
    "set_data_dir",
]

__version__ = "0.1.0"


def get_version() -> str:
    """Return the current package version."""
    return __version__
