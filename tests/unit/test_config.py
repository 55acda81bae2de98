import json

import pytest

from semmark import config as config_module
from semmark.services.config_service import apply_config_updates, get_config_snapshot


def _prepare_config(tmp_path, monkeypatch):
    config_dir = tmp_path / "config"
    config_file = config_dir / "config.json"
    monkeypatch.setattr(config_module, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_file)
    return config_file


def test_load_config_defaults(tmp_path, monkeypatch):
    _prepare_config(tmp_path, monkeypatch)

    cfg = config_module.load_config()

    assert cfg.provider == config_module.DEFAULT_PROVIDER
    assert cfg.index_backend == "hnsw"
    assert cfg.chunk_size == 1400
    assert cfg.truncate_length == 800
    assert cfg.similarity_threshold == 0.5
    assert cfg.page_size == 30
    assert cfg.ann_k == 500
    assert cfg.fetch_timeout == 15.0
    assert cfg.bookmarks_path is None


def test_resolve_default_model_for_openai():
    assert config_module.resolve_default_model("openai", None) == config_module.DEFAULT_OPENAI_MODEL
    assert (
        config_module.resolve_default_model("openai", config_module.DEFAULT_MODEL)
        == config_module.DEFAULT_OPENAI_MODEL
    )
    assert config_module.resolve_default_model("ollama", "nomic-embed-text") == "nomic-embed-text"


def test_resolve_api_key_prefers_config_then_env(monkeypatch):
    monkeypatch.delenv(config_module.ENV_API_KEY, raising=False)
    monkeypatch.setenv(config_module.OPENAI_ENV, "from-openai-env")
    assert config_module.resolve_api_key("configured", "openai") == "configured"
    assert config_module.resolve_api_key(None, "openai") == "from-openai-env"
    monkeypatch.setenv(config_module.ENV_API_KEY, "from-semmark-env")
    assert config_module.resolve_api_key(None, "custom") == "from-semmark-env"
    assert config_module.resolve_api_key(None, "ollama") is None


def test_setters_persist_values(tmp_path, monkeypatch):
    config_file = _prepare_config(tmp_path, monkeypatch)

    config_module.set_provider("OpenAI")
    config_module.set_base_url("https://proxy.example.com")
    config_module.set_index_backend("exact")

    stored = json.loads(config_file.read_text())
    assert stored["provider"] == "openai"
    assert stored["base_url"] == "https://proxy.example.com"
    assert stored["index_backend"] == "exact"

    config_module.set_base_url(None)
    assert config_module.load_config().base_url is None


def test_set_index_backend_rejects_unknown(tmp_path, monkeypatch):
    _prepare_config(tmp_path, monkeypatch)
    with pytest.raises(ValueError):
        config_module.set_index_backend("annoy")


def test_load_config_falls_back_on_unknown_choices(tmp_path, monkeypatch):
    config_file = _prepare_config(tmp_path, monkeypatch)
    config_file.parent.mkdir(parents=True)
    config_file.write_text(json.dumps({"provider": "mystery", "index_backend": "mystery"}))

    cfg = config_module.load_config()

    assert cfg.provider == config_module.DEFAULT_PROVIDER
    assert cfg.index_backend == config_module.DEFAULT_INDEX_BACKEND


def test_config_dir_context_overrides_location(tmp_path, monkeypatch):
    _prepare_config(tmp_path, monkeypatch)
    override = tmp_path / "override"

    with config_module.config_dir_context(override):
        config_module.set_model("nomic-embed-text")
        assert config_module.load_config().model == "nomic-embed-text"

    assert (override / "config.json").exists()
    assert config_module.load_config().model == config_module.DEFAULT_MODEL


def test_config_from_json_applies_payload():
    cfg = config_module.config_from_json(
        '{"page_size": 10, "similarity_threshold": 0.7, "index_backend": "none", "embed_timeout": null}'
    )
    assert cfg.page_size == 10
    assert cfg.similarity_threshold == 0.7
    assert cfg.index_backend == "none"
    assert cfg.embed_timeout is None


@pytest.mark.parametrize(
    "payload",
    ["not json", "[1, 2]", {"page_size": 0}, {"chunk_size": "big"}, {"provider": "mystery"}],
)
def test_config_from_json_rejects_invalid(payload):
    with pytest.raises(ValueError):
        config_module.config_from_json(payload)


def test_update_config_from_json_persists(tmp_path, monkeypatch):
    config_file = _prepare_config(tmp_path, monkeypatch)
    config_module.set_model("kept-model")

    config_module.update_config_from_json({"page_size": 12})

    stored = json.loads(config_file.read_text())
    assert stored["page_size"] == 12
    assert stored["model"] == "kept-model"


def test_resolve_bookmarks_path(tmp_path, monkeypatch):
    configured = tmp_path / "Bookmarks"
    assert config_module.resolve_bookmarks_path(str(configured)) == configured

    monkeypatch.setattr(config_module, "_default_bookmark_locations", lambda: [configured])
    assert config_module.resolve_bookmarks_path(None) is None
    configured.write_text("{}")
    assert config_module.resolve_bookmarks_path(None) == configured


def test_apply_config_updates_reports_changes(tmp_path, monkeypatch):
    _prepare_config(tmp_path, monkeypatch)

    result = apply_config_updates(model="all-minilm", index_backend="exact", bookmarks_path="/tmp/Bookmarks")

    assert result.changed
    assert result.model_set and result.backend_set and result.bookmarks_set
    assert not result.api_key_set
    snapshot = get_config_snapshot()
    assert snapshot.model == "all-minilm"
    assert snapshot.index_backend == "exact"
    assert snapshot.bookmarks_path == "/tmp/Bookmarks"


def test_apply_config_updates_without_changes(tmp_path, monkeypatch):
    _prepare_config(tmp_path, monkeypatch)
    assert not apply_config_updates().changed
