"""Embedding client wrapping the pluggable provider backends."""

from __future__ import annotations

import logging
from typing import Protocol

import numpy as np

from .config import (
    DEFAULT_MODEL,
    DEFAULT_PROVIDER,
    DEFAULT_TRUNCATE_LENGTH,
    INPUT_TOO_LONG_PATTERNS,
    SUPPORTED_PROVIDERS,
    Config,
    resolve_api_key,
    resolve_default_model,
)
from .text import Messages

logger = logging.getLogger(__name__)


class EmbeddingBackend(Protocol):
    """Minimal protocol for components that can embed one text."""

    def embed(self, text: str) -> np.ndarray:
        """Return the embedding of *text* as a 1D numpy array."""
        raise NotImplementedError  # pragma: no cover


def is_input_too_long(message: str) -> bool:
    lowered = message.lower()
    return any(pattern in lowered for pattern in INPUT_TOO_LONG_PATTERNS)


def normalize(vector: np.ndarray) -> np.ndarray:
    """Return *vector* scaled to unit length; a zero vector is returned unchanged."""
    array = np.asarray(vector, dtype=np.float32)
    norm = float(np.linalg.norm(array))
    if norm == 0.0:
        return array
    return array / norm


class EmbeddingClient:
    """Embeds single texts, retrying once with a truncated prompt when it is too long.

    ``embed`` never raises: any provider failure is logged and reported as
    ``None`` so callers can drop the chunk and continue.
    """

    def __init__(
        self,
        backend: EmbeddingBackend | None = None,
        *,
        provider: str = DEFAULT_PROVIDER,
        model_name: str = DEFAULT_MODEL,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        truncate_length: int = DEFAULT_TRUNCATE_LENGTH,
    ) -> None:
        self.provider = (provider or DEFAULT_PROVIDER).lower()
        self.model_name = resolve_default_model(self.provider, model_name)
        self.base_url = base_url
        self.api_key = resolve_api_key(api_key, self.provider)
        self.timeout = timeout
        self.truncate_length = max(int(truncate_length), 1)
        if backend is not None:
            self._backend = backend
            self._device = getattr(backend, "device", "Custom embedding backend")
        else:
            self._backend = self._create_backend()

    @classmethod
    def from_config(cls, config: Config) -> "EmbeddingClient":
        return cls(
            provider=config.provider,
            model_name=config.model,
            base_url=config.base_url,
            api_key=config.api_key,
            timeout=config.embed_timeout,
            truncate_length=config.truncate_length,
        )

    @property
    def device(self) -> str:
        """Return a description of the backend in use."""
        return self._device

    @property
    def signature(self) -> str:
        """Identify the provider and model whose vectors this client produces."""
        return f"{self.provider}:{self.model_name}"

    def embed(self, text: str) -> np.ndarray | None:
        try:
            return self._embed_once(text)
        except RuntimeError as exc:
            if not is_input_too_long(str(exc)):
                logger.warning("Embedding failed: %s", exc)
                return None
            logger.info(
                "Embedding input too long (%d chars); retrying with first %d",
                len(text),
                self.truncate_length,
            )
        try:
            return self._embed_once(text[: self.truncate_length])
        except RuntimeError as exc:
            logger.warning("Embedding failed after truncation: %s", exc)
            return None

    def _embed_once(self, text: str) -> np.ndarray:
        try:
            vector = self._backend.embed(text)
        except RuntimeError:
            raise
        except Exception as exc:
            raise RuntimeError(str(exc)) from exc
        array = np.asarray(vector, dtype=np.float32).ravel()
        if array.size == 0:
            raise RuntimeError(Messages.ERROR_NO_EMBEDDINGS)
        return array

    def _create_backend(self) -> EmbeddingBackend:
        if self.provider == "ollama":
            from .providers.ollama import OllamaEmbeddingBackend

            self._device = f"{self.model_name} via Ollama"
            return OllamaEmbeddingBackend(
                model_name=self.model_name,
                base_url=self.base_url,
                timeout=self.timeout,
            )
        if self.provider == "custom":
            from .providers.openai import OpenAIEmbeddingBackend

            base_url = (self.base_url or "").strip()
            if not base_url:
                raise RuntimeError(Messages.ERROR_CUSTOM_BASE_URL_REQUIRED)
            if not self.model_name or not self.model_name.strip():
                raise RuntimeError(Messages.ERROR_CUSTOM_MODEL_REQUIRED)
            self._device = f"{self.model_name} via OpenAI-compatible API"
            return OpenAIEmbeddingBackend(
                model_name=self.model_name,
                base_url=base_url,
                api_key=self.api_key,
                timeout=self.timeout,
            )
        if self.provider == "openai":
            from .providers.openai import OpenAIEmbeddingBackend

            self._device = f"{self.model_name} via OpenAI API"
            return OpenAIEmbeddingBackend(
                model_name=self.model_name,
                base_url=self.base_url,
                api_key=self.api_key,
                timeout=self.timeout,
            )
        allowed = ", ".join(SUPPORTED_PROVIDERS)
        raise RuntimeError(
            Messages.ERROR_PROVIDER_INVALID.format(value=self.provider, allowed=allowed)
        )
