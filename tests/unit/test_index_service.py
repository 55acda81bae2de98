import numpy as np
import pytest

from semmark.errors import IndexCorruptionError
from semmark.services.index_service import IndexState, VectorIndexManager
from semmark.store import BookmarkRecord
from semmark.vector_index import IndexEntry, create_index


def _unit(*values):
    vector = np.asarray(values, dtype=np.float32)
    return vector / np.linalg.norm(vector)


def _seed(store):
    store.add_bookmark(
        BookmarkRecord("a", "Alpha", "https://a.test"),
        [("a1", _unit(1, 0)), ("a2", _unit(1, 1))],
    )
    store.add_bookmark(BookmarkRecord("b", "Beta", "https://b.test"), [("b1", _unit(0, 1))])


def test_load_empty_store_gives_no_index(store):
    manager = VectorIndexManager(store, backend="exact")
    assert manager.load() is None
    assert manager.index is None
    assert not manager.available


def test_load_rebuilds_without_snapshot(store):
    _seed(store)
    manager = VectorIndexManager(store, backend="exact", batch_size=1)
    index = manager.load()
    assert manager.state is IndexState.LOADED_REBUILT
    assert sorted(index.ids()) == ["a", "a", "b"]


def test_load_uses_matching_snapshot(store):
    _seed(store)
    first = VectorIndexManager(store, backend="exact")
    first.load()
    first.save()
    assert store.load_snapshot() is not None

    second = VectorIndexManager(store, backend="exact")
    second.load()
    assert second.state is IndexState.LOADED_SNAPSHOT


def test_load_rebuilds_stale_snapshot(store):
    _seed(store)
    stale = create_index("exact")
    stale.add([IndexEntry("a", "Alpha", "u", _unit(1, 0))])
    store.store_snapshot(stale.serialize())

    manager = VectorIndexManager(store, backend="exact")
    manager.load()
    assert manager.state is IndexState.LOADED_REBUILT
    assert len(manager.index) == 3


def test_load_rebuilds_corrupt_snapshot(store, caplog):
    _seed(store)
    store.store_snapshot(b"garbage")
    manager = VectorIndexManager(store, backend="exact")
    with caplog.at_level("WARNING"):
        manager.load()
    assert manager.state is IndexState.LOADED_REBUILT
    assert "Discarding index snapshot" in caplog.text


def test_remove_bookmarks_updates_index_and_store(store):
    _seed(store)
    manager = VectorIndexManager(store, backend="exact")
    manager.load()
    manager.save()

    removed = manager.remove_bookmarks(["a"])

    assert removed == 2
    assert manager.index.ids() == ["b"]
    assert store.bookmark_ids() == {"b"}
    assert store.load_snapshot() is None
    assert manager.state is IndexState.MUTATED
    manager.save()
    assert manager.state is IndexState.SERIALIZED
    assert store.load_snapshot() is not None


def test_remove_last_bookmark_drops_snapshot(store):
    store.add_bookmark(BookmarkRecord("a", "A", "u"), [("a1", _unit(1, 0))])
    manager = VectorIndexManager(store, backend="exact")
    manager.load()
    manager.save()
    manager.remove_bookmarks(["a"])
    manager.save()
    assert manager.index is None
    assert store.load_snapshot() is None


def test_remove_with_missing_entry_resets_manager(store):
    _seed(store)
    manager = VectorIndexManager(store, backend="exact")
    manager.load()
    manager.index.remove([IndexEntry("b", "Beta", "u", _unit(0, 1))])

    with pytest.raises(IndexCorruptionError):
        manager.remove_bookmarks(["b"])

    assert manager.state is IndexState.UNINITIALIZED
    assert store.bookmark_ids() == {"a", "b"}
    manager.ensure_loaded()
    assert sorted(manager.index.ids()) == ["a", "a", "b"]


def test_add_entries_after_load(store):
    _seed(store)
    manager = VectorIndexManager(store, backend="exact")
    manager.load()
    store.add_bookmark(BookmarkRecord("c", "C", "u"), [("c1", _unit(-1, 0))])
    added = manager.add_entries([IndexEntry("c", "C", "u", _unit(-1, 0))])
    assert added == 1
    assert sorted(manager.index.ids()) == ["a", "a", "b", "c"]
    assert manager.search(_unit(-1, 0), k=1)[0].bookmark_id == "c"


def test_add_entries_when_uninitialized_loads_committed_state(store):
    _seed(store)
    manager = VectorIndexManager(store, backend="exact")
    manager.add_entries([IndexEntry("b", "Beta", "u", _unit(0, 1))])
    assert sorted(manager.index.ids()) == ["a", "a", "b"]


def test_disabled_backend_never_builds_index(store):
    _seed(store)
    manager = VectorIndexManager(store, backend="none")
    assert manager.load() is None
    assert manager.add_entries([IndexEntry("x", "X", "u", _unit(1, 0))]) == 0
    assert not manager.available
    assert manager.search(_unit(1, 0), 5) == []


def test_heartbeat_runs_during_rebuild(store, monkeypatch):
    _seed(store)
    calls = []

    class FakeHeartbeat:
        def __init__(self, interval, on_beat):
            calls.append((interval, on_beat))

        def __enter__(self):
            return None

        def __exit__(self, *_exc):
            calls.append("stopped")
            return False

    monkeypatch.setattr("semmark.services.index_service.heartbeat", FakeHeartbeat)
    beat = lambda: None  # noqa: E731
    manager = VectorIndexManager(store, backend="exact", heartbeat_interval=7.0, on_heartbeat=beat)
    manager.load()
    assert calls == [(7.0, beat), "stopped"]


def test_rebuild_keeps_only_latest_embedding_dimension(store, caplog):
    store.add_bookmark(BookmarkRecord("old", "Old", "https://old.test"), [("o1", _unit(1, 0))])
    store.add_bookmark(BookmarkRecord("new", "New", "https://new.test"), [("n1", _unit(0, 1, 0))])
    manager = VectorIndexManager(store, backend="exact")

    with caplog.at_level("WARNING"):
        index = manager.load()

    assert index.ids() == ["new"]
    assert index.dimension == 3
    assert "Skipping 1 chunk not embedded at dimension 3" in caplog.text
    assert manager.search(_unit(1, 0), k=5) == []
    assert [n.bookmark_id for n in manager.search(_unit(0, 1, 0), k=5)] == ["new"]


def test_snapshot_of_latest_dimension_is_reused(store):
    store.add_bookmark(BookmarkRecord("old", "Old", "https://old.test"), [("o1", _unit(1, 0))])
    store.add_bookmark(BookmarkRecord("new", "New", "https://new.test"), [("n1", _unit(0, 1, 0))])
    first = VectorIndexManager(store, backend="exact")
    first.load()
    first.save()

    second = VectorIndexManager(store, backend="exact")
    second.load()
    assert second.state is IndexState.LOADED_SNAPSHOT


def test_clear_drops_store_and_snapshot(store):
    _seed(store)
    manager = VectorIndexManager(store, backend="exact")
    manager.load()
    manager.save()

    manager.clear()

    assert store.bookmark_ids() == set()
    assert store.count_chunks() == 0
    assert store.load_snapshot() is None
    assert manager.index is None
    assert manager.state is IndexState.LOADED_REBUILT
