"""Persistent skip-list of bookmarks whose URLs are unreachable."""

from __future__ import annotations

import logging
from typing import Iterable

from ..store import DEAD_LINK_IDS_KEY, BookmarkStore

logger = logging.getLogger(__name__)


class DeadLinkRegistry:
    """Dead-link ids stored as a JSON list in the store's settings table."""

    def __init__(self, store: BookmarkStore) -> None:
        self._store = store

    def ids(self) -> set[str]:
        return set(self._store.get_setting(DEAD_LINK_IDS_KEY, []) or [])

    def __contains__(self, bookmark_id: object) -> bool:
        return bookmark_id in self.ids()

    def __len__(self) -> int:
        return len(self.ids())

    def add(self, bookmark_ids: Iterable[str]) -> int:
        """Record *bookmark_ids* as dead; return how many were new."""

        current = self._store.get_setting(DEAD_LINK_IDS_KEY, []) or []
        known = set(current)
        fresh = [item for item in dict.fromkeys(bookmark_ids) if item not in known]
        if not fresh:
            return 0
        self._store.set_setting(DEAD_LINK_IDS_KEY, [*current, *fresh])
        logger.info("Recorded %d dead link(s)", len(fresh))
        return len(fresh)

    def clear(self) -> None:
        self._store.set_setting(DEAD_LINK_IDS_KEY, [])
