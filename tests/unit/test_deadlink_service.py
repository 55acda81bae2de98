from semmark.services.deadlink_service import DeadLinkRegistry
from semmark.store import DEAD_LINK_IDS_KEY


def test_registry_starts_empty(store):
    registry = DeadLinkRegistry(store)
    assert registry.ids() == set()
    assert len(registry) == 0


def test_add_reports_new_ids_only(store):
    registry = DeadLinkRegistry(store)
    assert registry.add(["a", "b", "a"]) == 2
    assert registry.add(["b", "c"]) == 1
    assert "c" in registry
    assert store.get_setting(DEAD_LINK_IDS_KEY) == ["a", "b", "c"]


def test_registry_persists_across_instances(store):
    DeadLinkRegistry(store).add(["x"])
    assert DeadLinkRegistry(store).ids() == {"x"}


def test_clear_empties_registry(store):
    registry = DeadLinkRegistry(store)
    registry.add(["x"])
    registry.clear()
    assert len(registry) == 0


def test_clear_all_drops_dead_links(store):
    DeadLinkRegistry(store).add(["x"])
    store.clear_all()
    assert DeadLinkRegistry(store).ids() == set()
