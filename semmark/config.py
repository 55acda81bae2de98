"""Global configuration management for semmark."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from contextlib import contextmanager
from contextvars import ContextVar
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict

from .text import Messages

DEFAULT_CONFIG_DIR = Path(os.path.expanduser("~")) / ".semmark"
CONFIG_DIR = DEFAULT_CONFIG_DIR
CONFIG_FILE = CONFIG_DIR / "config.json"
_CONFIG_DIR_OVERRIDE: ContextVar[Path | None] = ContextVar(
    "semmark_config_dir_override",
    default=None,
)
DEFAULT_PROVIDER = "ollama"
DEFAULT_MODEL = "mxbai-embed-large:latest"
DEFAULT_OPENAI_MODEL = "text-embedding-3-small"
DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_INDEX_BACKEND = "hnsw"
DEFAULT_CHUNK_SIZE = 1400
DEFAULT_TRUNCATE_LENGTH = 800
DEFAULT_SIMILARITY_THRESHOLD = 0.5
DEFAULT_PAGE_SIZE = 30
DEFAULT_ANN_K = 500
DEFAULT_REBUILD_BATCH_SIZE = 1000
DEFAULT_FETCH_TIMEOUT = 15.0
DEFAULT_HEARTBEAT_INTERVAL = 20.0
SUPPORTED_PROVIDERS: tuple[str, ...] = (DEFAULT_PROVIDER, "openai", "custom")
SUPPORTED_INDEX_BACKENDS: tuple[str, ...] = (DEFAULT_INDEX_BACKEND, "exact", "none")
ENV_API_KEY = "SEMMARK_API_KEY"
OPENAI_ENV = "OPENAI_API_KEY"

# Lowercase substrings providers use to report an over-long prompt.
INPUT_TOO_LONG_PATTERNS: tuple[str, ...] = (
    "input length exceeds the context length",
    "maximum context length",
    "too many tokens",
    "input is too long",
)


@dataclass
class Config:
    api_key: str | None = None
    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    base_url: str | None = None
    index_backend: str = DEFAULT_INDEX_BACKEND
    chunk_size: int = DEFAULT_CHUNK_SIZE
    truncate_length: int = DEFAULT_TRUNCATE_LENGTH
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    page_size: int = DEFAULT_PAGE_SIZE
    ann_k: int = DEFAULT_ANN_K
    rebuild_batch_size: int = DEFAULT_REBUILD_BATCH_SIZE
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    embed_timeout: float | None = None
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    bookmarks_path: str | None = None
    anti_patterns_path: str | None = None


def _resolve_config_dir() -> Path:
    override = _CONFIG_DIR_OVERRIDE.get()
    return override if override is not None else CONFIG_DIR


def _resolve_config_file() -> Path:
    override = _CONFIG_DIR_OVERRIDE.get()
    if override is not None:
        return override / "config.json"
    return CONFIG_FILE


@contextmanager
def config_dir_context(path: Path | str | None):
    """Temporarily override the config directory for the current context."""

    if path is None:
        yield
        return
    dir_path = Path(path).expanduser().resolve()
    if dir_path.exists() and not dir_path.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {dir_path}")
    token = _CONFIG_DIR_OVERRIDE.set(dir_path)
    try:
        yield
    finally:
        _CONFIG_DIR_OVERRIDE.reset(token)


def set_config_dir(path: Path | str | None) -> None:
    global CONFIG_DIR, CONFIG_FILE
    if path is None:
        CONFIG_DIR = DEFAULT_CONFIG_DIR
    else:
        dir_path = Path(path).expanduser().resolve()
        if dir_path.exists() and not dir_path.is_dir():
            raise NotADirectoryError(f"Path is not a directory: {dir_path}")
        CONFIG_DIR = dir_path
    CONFIG_FILE = CONFIG_DIR / "config.json"


def load_config() -> Config:
    config_file = _resolve_config_file()
    if not config_file.exists():
        return Config()
    raw = json.loads(config_file.read_text(encoding="utf-8"))
    return Config(
        api_key=raw.get("api_key") or None,
        provider=_coerce_choice(raw.get("provider"), SUPPORTED_PROVIDERS, DEFAULT_PROVIDER),
        model=raw.get("model") or DEFAULT_MODEL,
        base_url=raw.get("base_url") or None,
        index_backend=_coerce_choice(
            raw.get("index_backend"), SUPPORTED_INDEX_BACKENDS, DEFAULT_INDEX_BACKEND
        ),
        chunk_size=int(raw.get("chunk_size", DEFAULT_CHUNK_SIZE)),
        truncate_length=int(raw.get("truncate_length", DEFAULT_TRUNCATE_LENGTH)),
        similarity_threshold=float(
            raw.get("similarity_threshold", DEFAULT_SIMILARITY_THRESHOLD)
        ),
        page_size=int(raw.get("page_size", DEFAULT_PAGE_SIZE)),
        ann_k=int(raw.get("ann_k", DEFAULT_ANN_K)),
        rebuild_batch_size=int(raw.get("rebuild_batch_size", DEFAULT_REBUILD_BATCH_SIZE)),
        fetch_timeout=float(raw.get("fetch_timeout", DEFAULT_FETCH_TIMEOUT)),
        embed_timeout=(
            float(raw["embed_timeout"]) if raw.get("embed_timeout") is not None else None
        ),
        heartbeat_interval=float(
            raw.get("heartbeat_interval", DEFAULT_HEARTBEAT_INTERVAL)
        ),
        bookmarks_path=raw.get("bookmarks_path") or None,
        anti_patterns_path=raw.get("anti_patterns_path") or None,
    )


def save_config(config: Config) -> None:
    config_dir = _resolve_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    data: Dict[str, Any] = {}
    for item in fields(Config):
        value = getattr(config, item.name)
        if value is None:
            continue
        data[item.name] = value
    config_file = _resolve_config_file()
    config_file.write_text(
        json.dumps(data, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )


def resolve_default_model(provider: str | None, model: str | None) -> str:
    """Return the effective model name for the selected provider."""
    clean_model = (model or "").strip()
    normalized = (provider or DEFAULT_PROVIDER).lower()
    if normalized == "openai" and (not clean_model or clean_model == DEFAULT_MODEL):
        return DEFAULT_OPENAI_MODEL
    if clean_model:
        return clean_model
    return DEFAULT_MODEL


def resolve_api_key(configured: str | None, provider: str) -> str | None:
    """Return the first available API key from config or environment."""

    normalized = (provider or DEFAULT_PROVIDER).lower()
    if normalized == "ollama":
        return configured
    if configured:
        return configured
    general = os.getenv(ENV_API_KEY)
    if general:
        return general
    openai_key = os.getenv(OPENAI_ENV)
    if openai_key:
        return openai_key
    return None


def resolve_bookmarks_path(configured: str | Path | None) -> Path | None:
    """Return the configured bookmarks file or the first Chrome profile found."""

    if configured:
        return Path(configured).expanduser()
    for candidate in _default_bookmark_locations():
        if candidate.is_file():
            return candidate
    return None


def _default_bookmark_locations() -> list[Path]:
    home = Path(os.path.expanduser("~"))
    local_app_data = os.getenv("LOCALAPPDATA")
    candidates = [
        home / ".config" / "google-chrome" / "Default" / "Bookmarks",
        home / ".config" / "chromium" / "Default" / "Bookmarks",
        home / "Library" / "Application Support" / "Google" / "Chrome" / "Default" / "Bookmarks",
    ]
    if local_app_data:
        candidates.append(
            Path(local_app_data) / "Google" / "Chrome" / "User Data" / "Default" / "Bookmarks"
        )
    return candidates


def config_from_json(
    payload: str | Mapping[str, object], *, base: Config | None = None
) -> Config:
    """Return a Config from a JSON string or mapping without saving it."""
    data = _coerce_config_payload(payload)
    config = Config() if base is None else replace(base)
    _apply_config_payload(config, data)
    return config


def update_config_from_json(
    payload: str | Mapping[str, object], *, replace_all: bool = False
) -> Config:
    """Update config from a JSON string or mapping and persist it."""
    base = None if replace_all else load_config()
    config = config_from_json(payload, base=base)
    save_config(config)
    return config


def set_api_key(value: str | None) -> None:
    config = load_config()
    config.api_key = value
    save_config(config)


def set_provider(value: str) -> None:
    config = load_config()
    config.provider = _normalize_choice(value, SUPPORTED_PROVIDERS, "provider")
    save_config(config)


def set_model(value: str) -> None:
    config = load_config()
    config.model = value
    save_config(config)


def set_base_url(value: str | None) -> None:
    config = load_config()
    config.base_url = value
    save_config(config)


def set_index_backend(value: str) -> None:
    config = load_config()
    config.index_backend = _normalize_choice(
        value, SUPPORTED_INDEX_BACKENDS, "index_backend"
    )
    save_config(config)


def set_bookmarks_path(value: str | None) -> None:
    config = load_config()
    config.bookmarks_path = value
    save_config(config)


def set_anti_patterns_path(value: str | None) -> None:
    config = load_config()
    config.anti_patterns_path = value
    save_config(config)


def _coerce_config_payload(payload: str | Mapping[str, object]) -> Mapping[str, object]:
    if isinstance(payload, str):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValueError(Messages.ERROR_CONFIG_JSON_INVALID) from exc
    elif isinstance(payload, Mapping):
        data = dict(payload)
    else:
        raise ValueError(Messages.ERROR_CONFIG_JSON_INVALID)
    if not isinstance(data, Mapping):
        raise ValueError(Messages.ERROR_CONFIG_JSON_INVALID)
    return data


def _apply_config_payload(config: Config, payload: Mapping[str, object]) -> None:
    if "api_key" in payload:
        config.api_key = _coerce_optional_str(payload["api_key"], "api_key")
    if "provider" in payload:
        config.provider = _normalize_choice(
            payload["provider"] or DEFAULT_PROVIDER, SUPPORTED_PROVIDERS, "provider"
        )
    if "model" in payload:
        config.model = _coerce_required_str(payload["model"], "model", DEFAULT_MODEL)
    if "base_url" in payload:
        config.base_url = _coerce_optional_str(payload["base_url"], "base_url")
    if "index_backend" in payload:
        config.index_backend = _normalize_choice(
            payload["index_backend"] or DEFAULT_INDEX_BACKEND,
            SUPPORTED_INDEX_BACKENDS,
            "index_backend",
        )
    for field, default in (
        ("chunk_size", DEFAULT_CHUNK_SIZE),
        ("truncate_length", DEFAULT_TRUNCATE_LENGTH),
        ("page_size", DEFAULT_PAGE_SIZE),
        ("ann_k", DEFAULT_ANN_K),
        ("rebuild_batch_size", DEFAULT_REBUILD_BATCH_SIZE),
    ):
        if field in payload:
            setattr(config, field, _coerce_positive_int(payload[field], field, default))
    for field, default in (
        ("similarity_threshold", DEFAULT_SIMILARITY_THRESHOLD),
        ("fetch_timeout", DEFAULT_FETCH_TIMEOUT),
        ("heartbeat_interval", DEFAULT_HEARTBEAT_INTERVAL),
    ):
        if field in payload:
            setattr(config, field, _coerce_float(payload[field], field, default))
    if "embed_timeout" in payload:
        value = payload["embed_timeout"]
        config.embed_timeout = (
            None if value is None else _coerce_float(value, "embed_timeout", 0.0)
        )
    if "bookmarks_path" in payload:
        config.bookmarks_path = _coerce_optional_str(
            payload["bookmarks_path"], "bookmarks_path"
        )
    if "anti_patterns_path" in payload:
        config.anti_patterns_path = _coerce_optional_str(
            payload["anti_patterns_path"], "anti_patterns_path"
        )


def _coerce_optional_str(value: object, field: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        cleaned = value.strip()
        return cleaned or None
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


def _coerce_required_str(value: object, field: str, default: str) -> str:
    if value is None:
        return default
    if isinstance(value, str):
        cleaned = value.strip()
        return cleaned or default
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


def _coerce_positive_int(value: object, field: str, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
        value = int(value)
    if isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return default
        try:
            value = int(cleaned)
        except ValueError as exc:
            raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field)) from exc
    if isinstance(value, int) and value > 0:
        return value
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


def _coerce_float(value: object, field: str, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return default
        try:
            return float(cleaned)
        except ValueError as exc:
            raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field)) from exc
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


def _normalize_choice(value: object, allowed: tuple[str, ...], field: str) -> str:
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in allowed:
            return normalized
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


def _coerce_choice(value: object, allowed: tuple[str, ...], default: str) -> str:
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in allowed:
            return normalized
    return default
