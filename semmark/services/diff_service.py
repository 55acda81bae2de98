"""Compute which bookmarks a sync must add and remove."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Collection, Iterable, Sequence

from ..bookmarks import BookmarkNode, collect_bookmarks
from ..store import BookmarkRecord


@dataclass(slots=True)
class CorpusDiff:
    to_add: list[BookmarkRecord] = field(default_factory=list)
    to_remove: list[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.to_add and not self.to_remove


def diff_corpus(
    selected_folder_ids: Iterable[str],
    stored_ids: Collection[str],
    tree: Sequence[BookmarkNode],
    dead_link_ids: Collection[str] = (),
) -> CorpusDiff:
    """Diff the stored corpus against everything reachable from the selected folders.

    Removal is recomputed against the whole stored corpus on every call, so
    repeated syncs converge regardless of how many happened since the last
    folder change.
    """

    reachable = collect_bookmarks(tree, selected_folder_ids)
    reachable_ids = {record.id for record in reachable}
    stored = set(stored_ids)
    dead = set(dead_link_ids)
    to_remove = sorted(stored - reachable_ids)
    to_add = [
        record
        for record in reachable
        if record.id not in stored and record.id not in dead
    ]
    return CorpusDiff(to_add=to_add, to_remove=to_remove)
