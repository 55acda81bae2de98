"""OpenAI-backed embedding backend for semmark."""

from __future__ import annotations

import numpy as np
from dotenv import load_dotenv
from openai import OpenAI

from ..text import Messages


class OpenAIEmbeddingBackend:
    """Embedding backend that calls OpenAI's (or a compatible) embeddings API."""

    def __init__(
        self,
        *,
        model_name: str,
        api_key: str | None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        load_dotenv()
        self.model_name = model_name
        self.api_key = api_key
        if not self.api_key:
            raise RuntimeError(Messages.ERROR_API_KEY_MISSING)
        client_kwargs: dict[str, object] = {"api_key": self.api_key}
        if base_url:
            client_kwargs["base_url"] = base_url.rstrip("/")
        if timeout is not None:
            client_kwargs["timeout"] = timeout
        self._client = OpenAI(**client_kwargs)

    def embed(self, text: str) -> np.ndarray:
        try:
            response = self._client.embeddings.create(
                model=self.model_name,
                input=[text],
            )
        except Exception as exc:  # pragma: no cover - API client variations
            raise RuntimeError(_format_openai_error(exc)) from exc
        data = getattr(response, "data", None) or []
        for item in data:
            embedding = getattr(item, "embedding", None)
            if embedding is not None:
                return np.asarray(embedding, dtype=np.float32)
        raise RuntimeError(Messages.ERROR_NO_EMBEDDINGS)


def _format_openai_error(exc: Exception) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return f"{Messages.ERROR_OPENAI_PREFIX}{message}"
