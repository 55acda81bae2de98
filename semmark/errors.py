"""Exception types shared across semmark."""

from __future__ import annotations


class SemmarkError(RuntimeError):
    """Base class for errors surfaced to semmark callers."""


class StorageError(SemmarkError):
    """Raised when a store transaction fails; the in-flight operation is aborted."""


class IndexCorruptionError(SemmarkError):
    """Raised when the vector index disagrees with the chunk store mid-mutation."""


class SnapshotError(SemmarkError):
    """Raised when a serialized index snapshot cannot be decoded."""
