import io
import json
from types import SimpleNamespace
from urllib import error as urlerror

import numpy as np
import pytest

import semmark.providers.ollama as ollama_backend
import semmark.providers.openai as openai_backend


class FakeResponse:
    def __init__(self, payload: dict) -> None:
        self._body = json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *_exc):
        return False


def test_ollama_backend_posts_prompt(monkeypatch):
    captured = {}

    def fake_urlopen(request, **kwargs):
        captured["url"] = request.full_url
        captured["body"] = json.loads(request.data.decode("utf-8"))
        captured["kwargs"] = kwargs
        return FakeResponse({"embedding": [0.1, 0.2, 0.3]})

    monkeypatch.setattr(ollama_backend.urlrequest, "urlopen", fake_urlopen)
    backend = ollama_backend.OllamaEmbeddingBackend()
    vector = backend.embed("hello")

    assert captured["url"] == "http://localhost:11434/api/embeddings"
    assert captured["body"] == {"model": "mxbai-embed-large:latest", "prompt": "hello"}
    assert captured["kwargs"] == {}
    assert vector.dtype == np.float32
    assert vector.shape == (3,)


def test_ollama_backend_uses_explicit_timeout(monkeypatch):
    captured = {}

    def fake_urlopen(request, **kwargs):
        captured.update(kwargs)
        return FakeResponse({"embedding": [1.0]})

    monkeypatch.setattr(ollama_backend.urlrequest, "urlopen", fake_urlopen)
    backend = ollama_backend.OllamaEmbeddingBackend(base_url="http://gpu:11434/", timeout=5.0)
    backend.embed("x")
    assert captured == {"timeout": 5.0}
    assert backend.endpoint == "http://gpu:11434/api/embeddings"


def test_ollama_backend_reports_http_error_detail(monkeypatch):
    def fake_urlopen(request, **kwargs):
        raise urlerror.HTTPError(
            request.full_url,
            500,
            "Internal Server Error",
            {},
            io.BytesIO(b'{"error": "the input length exceeds the context length"}'),
        )

    monkeypatch.setattr(ollama_backend.urlrequest, "urlopen", fake_urlopen)
    backend = ollama_backend.OllamaEmbeddingBackend()
    with pytest.raises(RuntimeError) as exc:
        backend.embed("x")
    assert "HTTP 500" in str(exc.value)
    assert "exceeds the context length" in str(exc.value)


def test_ollama_backend_reports_connection_error(monkeypatch):
    def fake_urlopen(request, **kwargs):
        raise urlerror.URLError("connection refused")

    monkeypatch.setattr(ollama_backend.urlrequest, "urlopen", fake_urlopen)
    with pytest.raises(RuntimeError, match="Ollama request failed"):
        ollama_backend.OllamaEmbeddingBackend().embed("x")


def test_ollama_backend_rejects_missing_embedding(monkeypatch):
    monkeypatch.setattr(
        ollama_backend.urlrequest,
        "urlopen",
        lambda request, **kwargs: FakeResponse({"embedding": []}),
    )
    with pytest.raises(RuntimeError, match="no embedding"):
        ollama_backend.OllamaEmbeddingBackend().embed("x")


class FakeOpenAIEmbeddings:
    def __init__(self, vectors):
        self.vectors = vectors
        self.calls = []

    def create(self, model, input):
        self.calls.append((model, list(input)))
        return SimpleNamespace(data=[SimpleNamespace(embedding=vec) for vec in self.vectors])


def test_openai_backend_embeds_single_prompt(monkeypatch):
    embeddings = FakeOpenAIEmbeddings([[1.0, 0.0]])
    captured = {}

    class FakeClient:
        def __init__(self, **kwargs):
            captured.update(kwargs)
            self.embeddings = embeddings

    monkeypatch.setattr(openai_backend, "OpenAI", FakeClient)
    backend = openai_backend.OpenAIEmbeddingBackend(
        model_name="text-embedding-3-small",
        api_key="sk-test",
        base_url="https://example.test/v1/",
        timeout=3.0,
    )
    vector = backend.embed("query")

    assert np.allclose(vector, [1.0, 0.0])
    assert embeddings.calls == [("text-embedding-3-small", ["query"])]
    assert captured == {
        "api_key": "sk-test",
        "base_url": "https://example.test/v1",
        "timeout": 3.0,
    }


def test_openai_backend_rejects_missing_api_key():
    with pytest.raises(RuntimeError) as exc:
        openai_backend.OpenAIEmbeddingBackend(model_name="m", api_key=None)
    assert "api key" in str(exc.value).lower()


def test_openai_backend_raises_on_empty_data(monkeypatch):
    class FakeClient:
        def __init__(self, **kwargs):
            self.embeddings = FakeOpenAIEmbeddings([])

    monkeypatch.setattr(openai_backend, "OpenAI", FakeClient)
    backend = openai_backend.OpenAIEmbeddingBackend(model_name="m", api_key="k")
    with pytest.raises(RuntimeError, match="no embedding"):
        backend.embed("x")
