"""In-memory vector index implementations and their snapshot format."""

from __future__ import annotations

import io
import logging
import zipfile
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence

import numpy as np

from .errors import IndexCorruptionError, SnapshotError
from .text import Messages

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
HNSW_M = 32
HNSW_EF_CONSTRUCTION = 200
HNSW_EF_SEARCH = 64
HNSW_COMPACT_RATIO = 0.25
DEFAULT_ADD_BATCH_SIZE = 1000


@dataclass(slots=True, eq=False)
class IndexEntry:
    """One chunk embedding tagged with its bookmark's display fields."""

    bookmark_id: str
    title: str
    url: str
    vector: np.ndarray


@dataclass(frozen=True, slots=True)
class Neighbor:
    bookmark_id: str
    title: str
    url: str
    distance: float


class VectorIndex(Protocol):
    backend: str

    def add(self, entries: Sequence[IndexEntry]) -> None: ...

    def remove(self, entries: Sequence[IndexEntry]) -> int: ...

    def search(self, query: np.ndarray, k: int) -> list[Neighbor]: ...

    def serialize(self) -> bytes: ...

    def ids(self) -> list[str]: ...

    def __len__(self) -> int: ...


def _top_indices(scores: np.ndarray, limit: int) -> list[int]:
    if limit <= 0:
        return []
    if limit >= scores.size:
        return sorted(range(scores.size), key=lambda idx: (-scores[idx], idx))
    indices = np.argpartition(-scores, limit - 1)[:limit]
    return sorted(indices.tolist(), key=lambda idx: (-scores[idx], idx))


class _EntryTable:
    """Entry metadata and the dense vector matrix shared by every backend."""

    backend = ""

    def __init__(self, dimension: int | None = None) -> None:
        self._ids: list[str] = []
        self._titles: list[str] = []
        self._urls: list[str] = []
        self._dimension = dimension
        self._matrix = np.empty((0, dimension or 0), dtype=np.float32)

    @property
    def dimension(self) -> int | None:
        return self._dimension

    def __len__(self) -> int:
        return len(self._ids)

    def ids(self) -> list[str]:
        return list(self._ids)

    def add(self, entries: Sequence[IndexEntry]) -> None:
        if not entries:
            return
        vectors = self._stack(entries)
        self._ids.extend(entry.bookmark_id for entry in entries)
        self._titles.extend(entry.title for entry in entries)
        self._urls.extend(entry.url for entry in entries)
        self._matrix = vectors if self._matrix.size == 0 else np.vstack([self._matrix, vectors])
        self._on_add(vectors)

    def remove(self, entries: Sequence[IndexEntry]) -> int:
        """Remove entries matching both bookmark id and vector; return the count removed."""

        if not entries:
            return 0
        positions_by_id: dict[str, list[int]] = defaultdict(list)
        for position, bookmark_id in enumerate(self._ids):
            positions_by_id[bookmark_id].append(position)
        doomed: set[int] = set()
        for entry in entries:
            vector = np.asarray(entry.vector, dtype=np.float32).ravel()
            match = None
            for position in positions_by_id.get(entry.bookmark_id, ()):
                if position in doomed:
                    continue
                if np.array_equal(self._matrix[position], vector):
                    match = position
                    break
            if match is None:
                raise IndexCorruptionError(
                    Messages.ERROR_INDEX_CORRUPT.format(
                        reason=f"no index entry for bookmark {entry.bookmark_id}"
                    )
                )
            doomed.add(match)
        keep = [idx for idx in range(len(self._ids)) if idx not in doomed]
        self._ids = [self._ids[idx] for idx in keep]
        self._titles = [self._titles[idx] for idx in keep]
        self._urls = [self._urls[idx] for idx in keep]
        self._matrix = self._matrix[keep] if keep else np.empty(
            (0, self._dimension or 0), dtype=np.float32
        )
        self._on_remove(keep)
        return len(doomed)

    def search(self, query: np.ndarray, k: int) -> list[Neighbor]:
        if not self._ids or k <= 0:
            return []
        vector = np.asarray(query, dtype=np.float32).ravel()
        if vector.shape[0] != self._dimension:
            logger.warning(
                "Query dimension %d does not match index dimension %s; returning no results",
                vector.shape[0],
                self._dimension,
            )
            return []
        return [
            Neighbor(
                bookmark_id=self._ids[idx],
                title=self._titles[idx],
                url=self._urls[idx],
                distance=1.0 - float(score),
            )
            for idx, score in self._query(vector, min(k, len(self._ids)))
        ]

    def serialize(self) -> bytes:
        arrays = {
            "version": np.array(SNAPSHOT_VERSION, dtype=np.int64),
            "backend": np.array(self.backend),
            "dimension": np.array(self._dimension or 0, dtype=np.int64),
            "ids": np.array(self._ids, dtype=np.str_),
            "titles": np.array(self._titles, dtype=np.str_),
            "urls": np.array(self._urls, dtype=np.str_),
            "vectors": self._matrix,
        }
        arrays.update(self._extra_arrays())
        buffer = io.BytesIO()
        np.savez(buffer, **arrays)
        return buffer.getvalue()

    def _stack(self, entries: Sequence[IndexEntry]) -> np.ndarray:
        vectors = np.vstack(
            [np.asarray(entry.vector, dtype=np.float32).ravel() for entry in entries]
        )
        if self._dimension is None:
            self._dimension = int(vectors.shape[1])
            self._matrix = np.empty((0, self._dimension), dtype=np.float32)
        elif vectors.shape[1] != self._dimension:
            raise IndexCorruptionError(
                Messages.ERROR_DIMENSION_MISMATCH.format(
                    got=vectors.shape[1], expected=self._dimension
                )
            )
        return np.ascontiguousarray(vectors, dtype=np.float32)

    def _restore(
        self,
        ids: list[str],
        titles: list[str],
        urls: list[str],
        vectors: np.ndarray,
    ) -> None:
        self._ids = ids
        self._titles = titles
        self._urls = urls
        self._matrix = np.ascontiguousarray(vectors, dtype=np.float32)

    def _query(self, vector: np.ndarray, k: int) -> Iterable[tuple[int, float]]:
        raise NotImplementedError  # pragma: no cover

    def _on_add(self, vectors: np.ndarray) -> None:
        return None

    def _on_remove(self, keep: list[int]) -> None:
        return None

    def _extra_arrays(self) -> dict[str, np.ndarray]:
        return {}


class ExactVectorIndex(_EntryTable):
    """Flat inner-product scan over unit vectors."""

    backend = "exact"

    def _query(self, vector: np.ndarray, k: int) -> Iterable[tuple[int, float]]:
        scores = self._matrix @ vector
        for idx in _top_indices(scores, k):
            yield idx, float(scores[idx])


def _load_faiss():
    try:
        import faiss
    except ImportError as exc:
        raise RuntimeError(Messages.ERROR_FAISS_MISSING) from exc
    return faiss


class HnswVectorIndex(_EntryTable):
    """faiss HNSW graph over unit vectors using the inner-product metric.

    HNSW graphs cannot drop nodes. Removed entries stay in the graph as
    tombstones that queries skip, and the graph is rebuilt from the surviving
    vectors once tombstones exceed ``HNSW_COMPACT_RATIO`` of its nodes.
    ``_labels`` maps each live position to its graph label.
    """

    backend = "hnsw"

    def __init__(
        self,
        dimension: int | None = None,
        *,
        batch_size: int = DEFAULT_ADD_BATCH_SIZE,
    ) -> None:
        super().__init__(dimension)
        self._faiss = _load_faiss()
        self.batch_size = max(int(batch_size), 1)
        self._graph = None
        self._labels = np.empty(0, dtype=np.int64)
        self._positions: dict[int, int] | None = None

    @property
    def tombstones(self) -> int:
        if self._graph is None:
            return 0
        return int(self._graph.ntotal) - len(self._ids)

    def _new_graph(self):
        faiss = self._faiss
        graph = faiss.IndexHNSWFlat(self._dimension, HNSW_M, faiss.METRIC_INNER_PRODUCT)
        graph.hnsw.efConstruction = HNSW_EF_CONSTRUCTION
        graph.hnsw.efSearch = HNSW_EF_SEARCH
        return graph

    def _on_add(self, vectors: np.ndarray) -> None:
        if self._graph is None:
            self._graph = self._new_graph()
        first = int(self._graph.ntotal)
        self._labels = np.concatenate(
            [self._labels, np.arange(first, first + vectors.shape[0], dtype=np.int64)]
        )
        self._positions = None
        for start in range(0, vectors.shape[0], self.batch_size):
            self._graph.add(np.ascontiguousarray(vectors[start : start + self.batch_size]))

    def _on_remove(self, keep: list[int]) -> None:
        self._labels = self._labels[keep] if keep else np.empty(0, dtype=np.int64)
        self._positions = None
        if not self._ids:
            self._graph = None
            return
        if self.tombstones > HNSW_COMPACT_RATIO * self._graph.ntotal:
            self._compact()

    def _compact(self) -> None:
        logger.debug(
            "Compacting HNSW graph: %d live vectors, %d tombstones",
            len(self._ids),
            self.tombstones,
        )
        self._graph = None
        self._labels = np.empty(0, dtype=np.int64)
        self._on_add(self._matrix)

    def _query(self, vector: np.ndarray, k: int) -> Iterable[tuple[int, float]]:
        if self._graph is None:
            return
        if self._positions is None:
            self._positions = {int(label): idx for idx, label in enumerate(self._labels.tolist())}
        fetch = min(int(self._graph.ntotal), k + self.tombstones)
        self._graph.hnsw.efSearch = max(HNSW_EF_SEARCH, fetch)
        scores, labels = self._graph.search(vector.reshape(1, -1), fetch)
        found = 0
        for label, score in zip(labels[0].tolist(), scores[0].tolist()):
            position = self._positions.get(int(label))
            if position is None:
                continue
            yield position, float(score)
            found += 1
            if found == k:
                return

    def _extra_arrays(self) -> dict[str, np.ndarray]:
        if self._graph is None:
            graph = np.empty(0, dtype=np.uint8)
        else:
            graph = np.asarray(self._faiss.serialize_index(self._graph), dtype=np.uint8)
        return {"graph": graph, "labels": self._labels}

    def _restore_graph(self, graph_bytes: np.ndarray, labels: np.ndarray | None) -> None:
        if graph_bytes.size == 0:
            self._graph = None
            self._labels = np.empty(0, dtype=np.int64)
            if self._ids:
                raise SnapshotError(Messages.ERROR_SNAPSHOT.format(reason="missing graph"))
            return
        try:
            graph = self._faiss.deserialize_index(np.ascontiguousarray(graph_bytes, dtype=np.uint8))
        except RuntimeError as exc:
            raise SnapshotError(Messages.ERROR_SNAPSHOT.format(reason=exc)) from exc
        if labels is None:
            labels = np.arange(graph.ntotal, dtype=np.int64)
        labels = np.asarray(labels, dtype=np.int64).ravel()
        if (
            labels.size != len(self._ids)
            or np.unique(labels).size != labels.size
            or (labels.size and (labels.min() < 0 or labels.max() >= graph.ntotal))
        ):
            raise SnapshotError(
                Messages.ERROR_SNAPSHOT.format(
                    reason=f"graph holds {graph.ntotal} vectors for {len(self._ids)} entries"
                )
            )
        self._graph = graph
        self._labels = labels
        self._positions = None


def create_index(backend: str, *, batch_size: int = DEFAULT_ADD_BATCH_SIZE) -> VectorIndex:
    """Return an empty index for *backend* (``"hnsw"`` or ``"exact"``)."""

    if backend == "exact":
        return ExactVectorIndex()
    if backend == "hnsw":
        return HnswVectorIndex(batch_size=batch_size)
    raise ValueError(f"Unsupported index backend: {backend}")


def load_snapshot(blob: bytes, *, batch_size: int = DEFAULT_ADD_BATCH_SIZE) -> VectorIndex:
    """Decode a snapshot produced by ``VectorIndex.serialize``."""

    try:
        with np.load(io.BytesIO(blob), allow_pickle=False) as archive:
            version = int(archive["version"])
            backend = str(archive["backend"])
            dimension = int(archive["dimension"])
            ids = [str(item) for item in archive["ids"].tolist()]
            titles = [str(item) for item in archive["titles"].tolist()]
            urls = [str(item) for item in archive["urls"].tolist()]
            vectors = np.asarray(archive["vectors"], dtype=np.float32)
            graph = archive["graph"] if "graph" in archive.files else None
            labels = archive["labels"] if "labels" in archive.files else None
    except (OSError, ValueError, KeyError, EOFError, zipfile.BadZipFile) as exc:
        raise SnapshotError(Messages.ERROR_SNAPSHOT.format(reason=exc)) from exc
    if version != SNAPSHOT_VERSION:
        raise SnapshotError(
            Messages.ERROR_SNAPSHOT.format(reason=f"unsupported version {version}")
        )
    if not (len(ids) == len(titles) == len(urls) == (vectors.shape[0] if ids else 0)):
        raise SnapshotError(Messages.ERROR_SNAPSHOT.format(reason="entry arrays disagree"))
    if ids and (vectors.ndim != 2 or vectors.shape[1] != dimension):
        raise SnapshotError(Messages.ERROR_SNAPSHOT.format(reason="vector shape mismatch"))
    try:
        index = create_index(backend, batch_size=batch_size)
    except ValueError as exc:
        raise SnapshotError(Messages.ERROR_SNAPSHOT.format(reason=exc)) from exc
    index._dimension = dimension or None
    if ids:
        index._restore(ids, titles, urls, vectors)
    if isinstance(index, HnswVectorIndex):
        if graph is None:
            raise SnapshotError(Messages.ERROR_SNAPSHOT.format(reason="missing graph"))
        index._restore_graph(graph, labels)
    return index
