"""Bring the indexed corpus in line with the selected bookmark folders."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np

from ..bookmarks import BookmarkNode
from ..chunking import build_document_text, chunk_text
from ..config import DEFAULT_CHUNK_SIZE
from ..embedding import EmbeddingClient, normalize
from ..fetcher import ContentFetcher
from ..store import BookmarkRecord, BookmarkStore
from ..text import Messages
from ..utils import plural
from ..vector_index import IndexEntry
from .deadlink_service import DeadLinkRegistry
from .diff_service import diff_corpus
from .index_service import IndexState, VectorIndexManager
from .quality_service import QualityGate, Verdict

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]


@dataclass(slots=True)
class SyncReport:
    added: int = 0
    removed: int = 0
    dead_links: int = 0
    soft_failures: int = 0
    chunks_indexed: int = 0
    dropped_chunks: int = 0
    skipped: int = 0


def _emit(on_status: StatusCallback | None, text: str) -> None:
    logger.info(text)
    if on_status is not None:
        on_status(text)


def run_sync(
    folder_ids: Sequence[str],
    *,
    store: BookmarkStore,
    index_manager: VectorIndexManager,
    embedder: EmbeddingClient,
    fetcher: ContentFetcher,
    gate: QualityGate,
    dead_links: DeadLinkRegistry,
    tree: Sequence[BookmarkNode],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    on_status: StatusCallback | None = None,
) -> SyncReport:
    """Diff, remove, fetch, embed and index until the store matches *folder_ids*.

    Per-bookmark fetch and embedding failures are recorded in the report and
    never abort the run. ``StorageError``, ``IndexCorruptionError`` and other
    ``RuntimeError`` failures abort it after a terminal failure status is pushed.
    """

    report = SyncReport()
    _emit(on_status, Messages.STATUS_FINDING)
    try:
        _check_embedding_model(store, index_manager, embedder)
        index_manager.ensure_loaded()
        diff = diff_corpus(folder_ids, store.bookmark_ids(), tree, dead_links.ids())
        if diff.is_noop:
            if index_manager.state is IndexState.LOADED_REBUILT:
                index_manager.save()
            store.set_indexed_folders(folder_ids)
            _emit(on_status, Messages.STATUS_UP_TO_DATE)
            return report

        if diff.to_remove:
            _emit(
                on_status,
                Messages.STATUS_REMOVING.format(
                    count=len(diff.to_remove), plural=plural(len(diff.to_remove))
                ),
            )
            index_manager.remove_bookmarks(diff.to_remove)
            report.removed = len(diff.to_remove)

        new_entries: list[IndexEntry] = []
        total = len(diff.to_add)
        for position, bookmark in enumerate(diff.to_add, start=1):
            _emit(
                on_status,
                Messages.STATUS_INDEXING.format(
                    current=position, total=total, title=bookmark.title
                ),
            )
            new_entries.extend(
                _index_bookmark(
                    bookmark,
                    store=store,
                    embedder=embedder,
                    fetcher=fetcher,
                    gate=gate,
                    dead_links=dead_links,
                    chunk_size=chunk_size,
                    report=report,
                )
            )

        if new_entries:
            _emit(on_status, Messages.STATUS_UPDATING_INDEX)
            index_manager.add_entries(new_entries)
        index_manager.save()
        store.set_indexed_folders(folder_ids)
    except RuntimeError as exc:
        index_manager.reset()
        _emit(on_status, Messages.STATUS_FAILED.format(reason=exc))
        raise
    _emit(on_status, Messages.STATUS_COMPLETE)
    return report


def _check_embedding_model(
    store: BookmarkStore,
    index_manager: VectorIndexManager,
    embedder: EmbeddingClient,
) -> None:
    previous = store.embedding_model()
    if previous is not None and previous != embedder.signature and store.count_bookmarks():
        logger.info(
            "Embedding model changed from %s to %s; reindexing every bookmark",
            previous,
            embedder.signature,
        )
        index_manager.clear()
    store.set_embedding_model(embedder.signature)


def _index_bookmark(
    bookmark: BookmarkRecord,
    *,
    store: BookmarkStore,
    embedder: EmbeddingClient,
    fetcher: ContentFetcher,
    gate: QualityGate,
    dead_links: DeadLinkRegistry,
    chunk_size: int,
    report: SyncReport,
) -> list[IndexEntry]:
    outcome = fetcher.fetch(bookmark.url)
    classification = gate.classify(outcome)

    if classification.verdict is Verdict.DEAD_LINK:
        logger.info("Dead link %s (%s): %s", bookmark.id, bookmark.url, classification.reason)
        dead_links.add([bookmark.id])
        report.dead_links += 1
        return []

    pairs: list[tuple[str, np.ndarray]] = []
    if classification.verdict is Verdict.SOFT_FAILURE:
        logger.info(
            "Falling back to title for %s: %s", bookmark.url, classification.reason
        )
        vector = embedder.embed(bookmark.title)
        if vector is None:
            report.dropped_chunks += 1
        else:
            pairs.append((Messages.PLACEHOLDER_CHUNK, normalize(vector)))
        report.soft_failures += 1
    else:
        document = build_document_text(bookmark.title, classification.text)
        for chunk in chunk_text(document, chunk_size):
            vector = embedder.embed(chunk)
            if vector is None:
                report.dropped_chunks += 1
                continue
            pairs.append((chunk, normalize(vector)))

    if not pairs:
        logger.warning("No embeddings for %s; it will be retried next sync", bookmark.url)
        report.skipped += 1
        return []

    store.add_bookmark(bookmark, pairs)
    report.added += 1
    report.chunks_indexed += len(pairs)
    return [
        IndexEntry(
            bookmark_id=bookmark.id,
            title=bookmark.title,
            url=bookmark.url,
            vector=vector,
        )
        for _, vector in pairs
    ]
