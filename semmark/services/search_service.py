"""Query embedding, ranking and pagination over the indexed bookmarks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from ..config import DEFAULT_ANN_K, DEFAULT_PAGE_SIZE, DEFAULT_SIMILARITY_THRESHOLD
from ..embedding import EmbeddingClient, normalize
from ..store import BookmarkStore
from .index_service import VectorIndexManager

logger = logging.getLogger(__name__)

BRUTE_FORCE_BATCH_SIZE = 1000


class SearchState(str, Enum):
    IDLE = "idle"
    EMBEDDING = "embedding"
    RANKING = "ranking"
    PAGINATED = "paginated"


@dataclass(slots=True)
class SearchResult:
    """One ranked bookmark; ``metric`` says whether ``score`` is a distance or a similarity."""

    bookmark_id: str
    title: str
    url: str
    chunk: str
    score: float
    metric: str = "similarity"

    def to_dict(self) -> dict[str, object]:
        return {
            "title": self.title,
            "url": self.url,
            "chunk": self.chunk,
            self.metric: self.score,
        }


@dataclass(slots=True)
class SearchPage:
    page: int
    results: list[SearchResult] = field(default_factory=list)
    total: int = 0
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def has_more(self) -> bool:
        return self.page * self.page_size < self.total


class ResultCache:
    """Single-slot holder for the last ranked result list."""

    def __init__(self) -> None:
        self.query: str | None = None
        self.results: list[SearchResult] = []
        self.page = 0

    def replace(self, query: str, results: list[SearchResult]) -> None:
        self.query = query
        self.results = results
        self.page = 1 if results else 0

    def clear(self) -> None:
        self.query = None
        self.results = []
        self.page = 0


class SearchService:
    def __init__(
        self,
        store: BookmarkStore,
        index_manager: VectorIndexManager,
        embedder: EmbeddingClient,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        ann_k: int = DEFAULT_ANN_K,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        cache: ResultCache | None = None,
    ) -> None:
        self._store = store
        self._index = index_manager
        self._embedder = embedder
        self.page_size = max(int(page_size), 1)
        self.ann_k = max(int(ann_k), 1)
        self.similarity_threshold = similarity_threshold
        self.cache = cache or ResultCache()
        self.state = SearchState.IDLE

    def search(self, query: str) -> SearchPage:
        """Rank bookmarks against *query*, cache the full list and return page 1.

        A blank query yields an empty page and clears the cached results.
        """

        clean_query = (query or "").strip()
        if not clean_query:
            logger.info("Empty query; returning no results")
            self.cache.replace(clean_query, [])
            self.state = SearchState.IDLE
            return self._page(1)
        self.state = SearchState.EMBEDDING
        try:
            vector = self._embedder.embed(clean_query)
            if vector is None:
                logger.warning("Query embedding unavailable; returning no results")
                results: list[SearchResult] = []
            else:
                self.state = SearchState.RANKING
                query_vector = normalize(vector)
                if self._index.available:
                    results = self._rank_ann(query_vector)
                else:
                    results = self._rank_brute_force(query_vector)
        except Exception:
            self.cache.replace(clean_query, [])
            self.state = SearchState.IDLE
            raise
        self.cache.replace(clean_query, results)
        self.state = SearchState.PAGINATED
        return self._page(1)

    def get_more_results(self, page: int) -> SearchPage:
        """Return *page* (1-based) of the cached results; out of range gives an empty page."""

        result = self._page(page)
        if result.results:
            self.cache.page = page
        return result

    def _page(self, page: int) -> SearchPage:
        results = self.cache.results
        total = len(results)
        if page < 1:
            return SearchPage(page=page, results=[], total=total, page_size=self.page_size)
        start = (page - 1) * self.page_size
        return SearchPage(
            page=page,
            results=list(results[start : start + self.page_size]),
            total=total,
            page_size=self.page_size,
        )

    def _rank_ann(self, query_vector: np.ndarray) -> list[SearchResult]:
        neighbors = self._index.search(query_vector, self.ann_k)
        best: dict[str, SearchResult] = {}
        for neighbor in neighbors:
            if neighbor.bookmark_id in best:
                continue
            best[neighbor.bookmark_id] = SearchResult(
                bookmark_id=neighbor.bookmark_id,
                title=neighbor.title,
                url=neighbor.url,
                chunk="",
                score=neighbor.distance,
                metric="distance",
            )
        chunks = self._store.first_chunk_texts(list(best))
        for bookmark_id, result in best.items():
            result.chunk = chunks.get(bookmark_id, "")
        return list(best.values())

    def _rank_brute_force(self, query_vector: np.ndarray) -> list[SearchResult]:
        best_scores: dict[str, tuple[float, str]] = {}
        query = query_vector.reshape(1, -1)
        for batch in self._store.iter_chunk_batches(BRUTE_FORCE_BATCH_SIZE):
            usable = [record for record in batch if record.embedding.shape[0] == query.shape[1]]
            if len(usable) != len(batch):
                logger.warning(
                    "Skipping %d chunk(s) with mismatched embedding dimension",
                    len(batch) - len(usable),
                )
            if not usable:
                continue
            matrix = np.vstack([record.embedding for record in usable])
            similarities = cosine_similarity(query, matrix)[0]
            for record, similarity in zip(usable, similarities):
                score = float(similarity)
                if score < self.similarity_threshold:
                    continue
                current = best_scores.get(record.bookmark_id)
                if current is None or score > current[0]:
                    best_scores[record.bookmark_id] = (score, record.chunk_text)
        if not best_scores:
            return []
        bookmarks = self._store.get_bookmarks(list(best_scores))
        results = []
        for bookmark_id, (score, chunk_text) in best_scores.items():
            record = bookmarks.get(bookmark_id)
            if record is None:
                continue
            results.append(
                SearchResult(
                    bookmark_id=bookmark_id,
                    title=record.title,
                    url=record.url,
                    chunk=chunk_text,
                    score=score,
                    metric="similarity",
                )
            )
        results.sort(key=lambda item: item.score, reverse=True)
        return results
