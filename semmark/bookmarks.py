"""Bookmark tree model and the Chrome/Chromium bookmark file source."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Protocol, Sequence

from .store import BookmarkRecord
from .text import Messages

CHROME_ROOT_KEYS: tuple[str, ...] = ("bookmark_bar", "other", "synced")


@dataclass(frozen=True, slots=True)
class BookmarkNode:
    """A folder (``url is None``) or a bookmark in the source tree."""

    id: str
    title: str
    url: str | None = None
    children: tuple["BookmarkNode", ...] = field(default_factory=tuple)

    @property
    def is_folder(self) -> bool:
        return self.url is None

    def to_record(self) -> BookmarkRecord:
        return BookmarkRecord(id=self.id, title=self.title, url=self.url or "")


class BookmarkSource(Protocol):
    def get_tree(self) -> Sequence[BookmarkNode]:
        raise NotImplementedError  # pragma: no cover


class ChromeBookmarkSource:
    """Reads the ``Bookmarks`` JSON file written by Chrome and Chromium."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()

    def get_tree(self) -> list[BookmarkNode]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise RuntimeError(Messages.ERROR_BOOKMARKS_MISSING) from exc
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise RuntimeError(
                Messages.ERROR_BOOKMARKS_INVALID.format(path=self.path)
            ) from exc
        roots = raw.get("roots") if isinstance(raw, dict) else None
        if not isinstance(roots, dict):
            raise RuntimeError(Messages.ERROR_BOOKMARKS_INVALID.format(path=self.path))
        tree: list[BookmarkNode] = []
        for key in CHROME_ROOT_KEYS:
            node = roots.get(key)
            if isinstance(node, dict):
                tree.append(_parse_node(node))
        return tree


def _parse_node(raw: dict) -> BookmarkNode:
    node_id = str(raw.get("id", ""))
    title = str(raw.get("name", ""))
    if raw.get("type") == "url":
        return BookmarkNode(id=node_id, title=title, url=str(raw.get("url", "")))
    children = tuple(
        _parse_node(child)
        for child in raw.get("children", []) or []
        if isinstance(child, dict)
    )
    return BookmarkNode(id=node_id, title=title, children=children)


def _walk_bookmarks(node: BookmarkNode) -> Iterator[BookmarkNode]:
    if not node.is_folder:
        yield node
        return
    for child in node.children:
        yield from _walk_bookmarks(child)


def collect_bookmarks(
    tree: Sequence[BookmarkNode],
    folder_ids: Iterable[str],
) -> list[BookmarkRecord]:
    """Return every bookmark under the selected folders, deduplicated by id.

    Selected folders are matched at any depth; an unselected folder is
    searched for selected descendants. Order is first-seen.
    """

    selected = set(folder_ids)
    seen: set[str] = set()
    records: list[BookmarkRecord] = []

    def _visit(nodes: Sequence[BookmarkNode]) -> None:
        for node in nodes:
            if not node.is_folder:
                continue
            if node.id in selected:
                for bookmark in _walk_bookmarks(node):
                    if bookmark.id in seen:
                        continue
                    seen.add(bookmark.id)
                    records.append(bookmark.to_record())
            else:
                _visit(node.children)

    _visit(tree)
    return records


def iter_folders(
    tree: Sequence[BookmarkNode], depth: int = 0
) -> Iterator[tuple[BookmarkNode, int]]:
    """Yield ``(folder, depth)`` for every folder in the tree, depth-first."""

    for node in tree:
        if not node.is_folder:
            continue
        yield node, depth
        yield from iter_folders(node.children, depth + 1)


def count_bookmarks(node: BookmarkNode) -> int:
    return sum(1 for _ in _walk_bookmarks(node))
