"""Public Python API for semmark: the engine and its request types."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Sequence

from .bookmarks import BookmarkSource, ChromeBookmarkSource
from .config import (
    Config,
    load_config,
    resolve_bookmarks_path,
    set_config_dir,
    update_config_from_json,
)
from .embedding import EmbeddingClient
from .errors import SemmarkError
from .fetcher import ContentFetcher, WebContentFetcher
from .services.deadlink_service import DeadLinkRegistry
from .services.index_service import VectorIndexManager
from .services.quality_service import QualityGate, load_anti_patterns
from .services.search_service import ResultCache, SearchPage, SearchService
from .services.sync_service import SyncReport, run_sync
from .store import DB_FILENAME, BookmarkStore, store_db_path
from .store import set_data_dir as set_store_dir
from .text import Messages

logger = logging.getLogger(__name__)


def set_data_dir(path: Path | str | None) -> None:
    """Set the base directory for config and the bookmark database."""
    set_config_dir(path)
    set_store_dir(path)


def set_config_json(
    payload: Mapping[str, object] | str, *, replace: bool = False
) -> Config:
    """Persist config values from a JSON string or mapping."""
    try:
        return update_config_from_json(payload, replace_all=replace)
    except ValueError as exc:
        raise SemmarkError(str(exc)) from exc


@dataclass(frozen=True, slots=True)
class SyncRequest:
    folder_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SearchRequest:
    query: str


@dataclass(frozen=True, slots=True)
class MoreResultsRequest:
    page: int


@dataclass(frozen=True, slots=True)
class ClearDataRequest:
    pass


@dataclass(frozen=True, slots=True)
class StatsRequest:
    pass


@dataclass(frozen=True, slots=True)
class Stats:
    bookmark_count: int = 0
    chunk_count: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"bookmarkCount": self.bookmark_count, "chunkCount": self.chunk_count}


class Engine:
    """Owns the store, vector index, search cache and collaborators for one process.

    Collaborators that are not injected are created from ``config`` on first
    use, so an engine that only reports stats never contacts an embedding
    provider.
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        data_dir: Path | str | None = None,
        embedder: EmbeddingClient | None = None,
        fetcher: ContentFetcher | None = None,
        source: BookmarkSource | None = None,
        gate: QualityGate | None = None,
        on_status: Callable[[str], None] | None = None,
    ) -> None:
        self.config = config if config is not None else load_config()
        self._data_dir = Path(data_dir).expanduser() if data_dir is not None else None
        self._embedder = embedder
        self._fetcher = fetcher
        self._source = source
        self._gate = gate
        self.on_status = on_status
        self.cache = ResultCache()
        self._store: BookmarkStore | None = None
        self._index_manager: VectorIndexManager | None = None
        self._search_service: SearchService | None = None

    # -- lifecycle ------------------------------------------------------------

    def open(self) -> "Engine":
        if self._store is not None:
            return self
        if self._data_dir is not None:
            db_path = self._data_dir / DB_FILENAME
        else:
            db_path = store_db_path()
        self._store = BookmarkStore(db_path).open()
        self._index_manager = VectorIndexManager(
            self._store,
            backend=self.config.index_backend,
            batch_size=self.config.rebuild_batch_size,
            heartbeat_interval=self.config.heartbeat_interval,
            on_heartbeat=self._on_heartbeat,
        )
        logger.debug("Opened store at %s", db_path)
        return self

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
        self._store = None
        self._index_manager = None
        self._search_service = None

    def __enter__(self) -> "Engine":
        return self.open()

    def __exit__(self, *_exc) -> None:
        self.close()

    # -- collaborators --------------------------------------------------------

    @property
    def store(self) -> BookmarkStore:
        self.open()
        assert self._store is not None
        return self._store

    @property
    def index_manager(self) -> VectorIndexManager:
        self.open()
        assert self._index_manager is not None
        return self._index_manager

    @property
    def embedder(self) -> EmbeddingClient:
        if self._embedder is None:
            self._embedder = EmbeddingClient.from_config(self.config)
        return self._embedder

    @property
    def fetcher(self) -> ContentFetcher:
        if self._fetcher is None:
            self._fetcher = WebContentFetcher(timeout=self.config.fetch_timeout)
        return self._fetcher

    @property
    def source(self) -> BookmarkSource:
        if self._source is None:
            path = resolve_bookmarks_path(self.config.bookmarks_path)
            if path is None:
                raise RuntimeError(Messages.ERROR_BOOKMARKS_MISSING)
            self._source = ChromeBookmarkSource(path)
        return self._source

    @property
    def gate(self) -> QualityGate:
        if self._gate is None:
            self._gate = QualityGate(load_anti_patterns(self.config.anti_patterns_path))
        return self._gate

    @property
    def dead_links(self) -> DeadLinkRegistry:
        return DeadLinkRegistry(self.store)

    @property
    def search_service(self) -> SearchService:
        if self._search_service is None:
            self._search_service = SearchService(
                self.store,
                self.index_manager,
                self.embedder,
                page_size=self.config.page_size,
                ann_k=self.config.ann_k,
                similarity_threshold=self.config.similarity_threshold,
                cache=self.cache,
            )
        return self._search_service

    # -- operations -----------------------------------------------------------

    def sync(self, folder_ids: Sequence[str]) -> SyncReport:
        """Index the bookmarks under *folder_ids* and drop everything else."""

        tree = self.source.get_tree()
        return run_sync(
            list(folder_ids),
            store=self.store,
            index_manager=self.index_manager,
            embedder=self.embedder,
            fetcher=self.fetcher,
            gate=self.gate,
            dead_links=self.dead_links,
            tree=tree,
            chunk_size=self.config.chunk_size,
            on_status=self.on_status,
        )

    def search(self, query: str) -> SearchPage:
        return self.search_service.search(query)

    def get_more_results(self, page: int) -> SearchPage:
        return self.search_service.get_more_results(page)

    def clear_all_data(self) -> bool:
        """Delete every persisted record and start over with empty stores."""

        self.store.clear_all()
        self.index_manager.reset()
        self.index_manager.load()
        self.cache.clear()
        logger.info(Messages.STATUS_CLEARED)
        if self.on_status is not None:
            self.on_status(Messages.STATUS_CLEARED)
        return True

    def get_stats(self) -> Stats:
        return Stats(
            bookmark_count=self.store.count_bookmarks(),
            chunk_count=self.store.count_chunks(),
        )

    def indexed_folders(self) -> list[str]:
        return self.store.indexed_folders()

    def handle(self, request: object):
        """Dispatch a request object to its operation."""

        if isinstance(request, SyncRequest):
            return self.sync(request.folder_ids)
        if isinstance(request, SearchRequest):
            return self.search(request.query)
        if isinstance(request, MoreResultsRequest):
            return self.get_more_results(request.page)
        if isinstance(request, ClearDataRequest):
            return self.clear_all_data()
        if isinstance(request, StatsRequest):
            return self.get_stats()
        raise TypeError(f"Unsupported request type: {type(request).__name__}")

    def _on_heartbeat(self) -> None:
        logger.debug("Index maintenance still running")
