"""Lifecycle of the in-memory vector index and its persisted snapshot."""

from __future__ import annotations

import logging
from collections import Counter
from enum import Enum
from typing import Callable, Sequence

import numpy as np

from ..config import DEFAULT_HEARTBEAT_INTERVAL, DEFAULT_INDEX_BACKEND, DEFAULT_REBUILD_BATCH_SIZE
from ..errors import SnapshotError
from ..store import BookmarkStore
from ..utils import heartbeat, plural
from ..vector_index import IndexEntry, Neighbor, VectorIndex, create_index, load_snapshot

logger = logging.getLogger(__name__)


class IndexState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADED_SNAPSHOT = "loaded_snapshot"
    LOADED_REBUILT = "loaded_rebuilt"
    MUTATED = "mutated"
    SERIALIZED = "serialized"


class VectorIndexManager:
    """Keeps the ANN index consistent with the chunk store.

    The index is loaded from the stored snapshot when it still matches the
    chunk store and rebuilt otherwise. A failed mutation drops the in-memory
    index so the next call reloads from committed state.
    """

    def __init__(
        self,
        store: BookmarkStore,
        *,
        backend: str = DEFAULT_INDEX_BACKEND,
        batch_size: int = DEFAULT_REBUILD_BATCH_SIZE,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        on_heartbeat: Callable[[], None] | None = None,
    ) -> None:
        self._store = store
        self.backend = backend
        self.batch_size = max(int(batch_size), 1)
        self.heartbeat_interval = heartbeat_interval
        self.on_heartbeat = on_heartbeat
        self.index: VectorIndex | None = None
        self.state = IndexState.UNINITIALIZED

    @property
    def enabled(self) -> bool:
        return self.backend != "none"

    @property
    def available(self) -> bool:
        """True when an ANN index with at least one entry can answer queries."""
        self.ensure_loaded()
        return self.index is not None and len(self.index) > 0

    def ensure_loaded(self) -> None:
        if self.state is IndexState.UNINITIALIZED:
            self.load()

    def load(self) -> VectorIndex | None:
        if not self.enabled:
            self.index = None
            self.state = IndexState.LOADED_REBUILT
            return None
        dimension = self._store.latest_embedding_dimension()
        counts = self._store.chunk_id_counts(dimension=dimension)
        if not counts:
            self.index = None
            self.state = IndexState.LOADED_REBUILT
            return None
        blob = self._store.load_snapshot()
        if blob is not None:
            try:
                index = load_snapshot(blob, batch_size=self.batch_size)
            except SnapshotError as exc:
                logger.warning("Discarding index snapshot: %s", exc)
            else:
                if index.backend != self.backend:
                    logger.info(
                        "Index snapshot built for %s, configured backend is %s; rebuilding",
                        index.backend,
                        self.backend,
                    )
                elif Counter(index.ids()) != Counter(counts):
                    logger.info("Index snapshot is stale; rebuilding")
                else:
                    self.index = index
                    self.state = IndexState.LOADED_SNAPSHOT
                    logger.debug("Loaded index snapshot with %d entries", len(index))
                    return index
        return self.rebuild()

    def rebuild(self) -> VectorIndex | None:
        """Build a fresh index from every stored chunk.

        Only chunks embedded at the width of the newest chunk are indexed;
        older widths left behind by a model change are skipped.
        """

        index = create_index(self.backend, batch_size=self.batch_size)
        dimension = self._store.latest_embedding_dimension()
        if dimension is not None:
            skipped = self._store.count_chunks() - sum(
                self._store.chunk_id_counts(dimension=dimension).values()
            )
            if skipped:
                logger.warning(
                    "Skipping %d chunk%s not embedded at dimension %d",
                    skipped,
                    plural(skipped),
                    dimension,
                )
        with heartbeat(self.heartbeat_interval, self.on_heartbeat):
            for rows in self._store.iter_indexed_rows(self.batch_size, dimension=dimension):
                index.add(
                    [
                        IndexEntry(
                            bookmark_id=row.bookmark_id,
                            title=row.title,
                            url=row.url,
                            vector=row.embedding,
                        )
                        for row in rows
                    ]
                )
        self.index = index if len(index) else None
        self.state = IndexState.LOADED_REBUILT
        logger.info("Rebuilt %s index with %d entries", self.backend, len(index))
        return self.index

    def remove_bookmarks(self, bookmark_ids: Sequence[str]) -> int:
        """Remove every chunk of *bookmark_ids* from the index and the store.

        Returns the number of index entries removed.
        """

        if not bookmark_ids:
            return 0
        self.ensure_loaded()
        try:
            chunks = self._store.chunks_for_bookmarks(bookmark_ids)
            records = self._store.get_bookmarks(bookmark_ids)
            self._store.delete_snapshot()
            removed = 0
            if self.index is not None and chunks:
                entries = []
                for chunk in chunks:
                    record = records.get(chunk.bookmark_id)
                    entries.append(
                        IndexEntry(
                            bookmark_id=chunk.bookmark_id,
                            title=record.title if record else "",
                            url=record.url if record else "",
                            vector=chunk.embedding,
                        )
                    )
                with heartbeat(self.heartbeat_interval, self.on_heartbeat):
                    removed = self.index.remove(entries)
            self._store.delete_bookmarks(bookmark_ids)
        except Exception:
            self.reset()
            raise
        if self.index is not None and len(self.index) == 0:
            self.index = None
        self.state = IndexState.MUTATED
        return removed

    def add_entries(self, entries: Sequence[IndexEntry]) -> int:
        """Bulk-add entries whose chunks are already committed to the store."""

        if not entries or not self.enabled:
            return 0
        if self.state is IndexState.UNINITIALIZED:
            # Loading reads the committed chunks, which already include *entries*.
            self.load()
            return len(entries)
        try:
            self._store.delete_snapshot()
            if self.index is None:
                self.index = create_index(self.backend, batch_size=self.batch_size)
            with heartbeat(self.heartbeat_interval, self.on_heartbeat):
                for start in range(0, len(entries), self.batch_size):
                    self.index.add(entries[start : start + self.batch_size])
        except Exception:
            self.reset()
            raise
        self.state = IndexState.MUTATED
        return len(entries)

    def save(self) -> None:
        """Write a fresh snapshot, or drop it when there is nothing to persist."""

        if self.state is IndexState.UNINITIALIZED:
            return
        if self.index is None or len(self.index) == 0:
            self._store.delete_snapshot()
        else:
            self._store.store_snapshot(self.index.serialize())
        self.state = IndexState.SERIALIZED

    def search(self, query: np.ndarray, k: int) -> list[Neighbor]:
        self.ensure_loaded()
        if self.index is None:
            return []
        return self.index.search(query, k)

    def clear(self) -> None:
        """Drop every stored bookmark, its chunks and the snapshot."""

        self._store.delete_snapshot()
        self._store.delete_bookmarks(sorted(self._store.bookmark_ids()))
        self.index = None
        self.state = IndexState.LOADED_REBUILT

    def reset(self) -> None:
        self.index = None
        self.state = IndexState.UNINITIALIZED
