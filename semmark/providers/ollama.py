"""Ollama-backed embedding backend for semmark."""

from __future__ import annotations

import json
from urllib import error as urlerror
from urllib import request as urlrequest

import numpy as np

from ..config import DEFAULT_MODEL, DEFAULT_OLLAMA_URL
from ..text import Messages


class OllamaEmbeddingBackend:
    """Embedding backend that calls a local Ollama server's embeddings endpoint."""

    def __init__(
        self,
        *,
        model_name: str = DEFAULT_MODEL,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.model_name = model_name
        self.base_url = (base_url or DEFAULT_OLLAMA_URL).rstrip("/")
        self.timeout = timeout

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/api/embeddings"

    def embed(self, text: str) -> np.ndarray:
        payload = {"model": self.model_name, "prompt": text}
        data = json.dumps(payload).encode("utf-8")
        request = urlrequest.Request(self.endpoint, data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        kwargs = {} if self.timeout is None else {"timeout": self.timeout}
        try:
            with urlrequest.urlopen(request, **kwargs) as response:
                body = response.read().decode("utf-8", errors="replace")
        except urlerror.HTTPError as exc:
            reason = f"HTTP {exc.code}"
            try:
                detail = exc.read().decode("utf-8", errors="replace").strip()
            except Exception:
                detail = ""
            if detail:
                reason = f"{reason}: {_error_detail(detail)[:200]}"
            raise RuntimeError(f"{Messages.ERROR_OLLAMA_PREFIX}{reason}") from exc
        except urlerror.URLError as exc:
            raise RuntimeError(f"{Messages.ERROR_OLLAMA_PREFIX}{exc.reason}") from exc
        except OSError as exc:
            raise RuntimeError(f"{Messages.ERROR_OLLAMA_PREFIX}{exc}") from exc
        try:
            parsed = json.loads(body)
        except json.JSONDecodeError as exc:
            raise RuntimeError(
                f"{Messages.ERROR_OLLAMA_PREFIX}Invalid JSON response"
            ) from exc
        embedding = parsed.get("embedding") if isinstance(parsed, dict) else None
        if not embedding:
            raise RuntimeError(Messages.ERROR_NO_EMBEDDINGS)
        return np.asarray(embedding, dtype=np.float32)


def _error_detail(body: str) -> str:
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        return body
    if isinstance(parsed, dict) and isinstance(parsed.get("error"), str):
        return parsed["error"]
    return body
