import numpy as np
import pytest

from semmark.embedding import EmbeddingClient, is_input_too_long, normalize


class RecordingBackend:
    device = "recording"

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls: list[str] = []

    def embed(self, text):
        self.calls.append(text)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return np.asarray(response, dtype=np.float32)


def test_embed_returns_vector():
    backend = RecordingBackend([[1.0, 2.0]])
    client = EmbeddingClient(backend)
    vector = client.embed("hello")
    assert np.allclose(vector, [1.0, 2.0])
    assert backend.calls == ["hello"]
    assert client.device == "recording"


def test_embed_retries_once_with_truncated_text():
    backend = RecordingBackend(
        [RuntimeError("Ollama request failed: HTTP 500: the input length exceeds the context length"), [0.5, 0.5]]
    )
    client = EmbeddingClient(backend, truncate_length=800)
    text = "x" * 2000
    vector = client.embed(text)
    assert vector is not None
    assert backend.calls == [text, "x" * 800]


def test_embed_gives_up_after_second_failure():
    backend = RecordingBackend(
        [RuntimeError("maximum context length exceeded"), RuntimeError("too many tokens")]
    )
    client = EmbeddingClient(backend)
    assert client.embed("y" * 1000) is None
    assert len(backend.calls) == 2


def test_embed_does_not_retry_other_errors():
    backend = RecordingBackend([RuntimeError("connection refused")])
    client = EmbeddingClient(backend)
    assert client.embed("text") is None
    assert len(backend.calls) == 1


def test_embed_wraps_unexpected_exceptions():
    backend = RecordingBackend([ValueError("boom")])
    client = EmbeddingClient(backend)
    assert client.embed("text") is None


def test_embed_rejects_empty_vectors():
    backend = RecordingBackend([[]])
    client = EmbeddingClient(backend)
    assert client.embed("text") is None


def test_is_input_too_long_matches_known_patterns():
    assert is_input_too_long("The INPUT LENGTH EXCEEDS THE CONTEXT LENGTH")
    assert not is_input_too_long("rate limited")


def test_normalize_unit_length_and_zero_vector():
    assert np.allclose(normalize(np.array([3.0, 4.0])), [0.6, 0.8])
    zero = normalize(np.zeros(3))
    assert np.array_equal(zero, np.zeros(3, dtype=np.float32))


def test_client_rejects_unknown_provider():
    with pytest.raises(RuntimeError, match="Unsupported provider"):
        EmbeddingClient(provider="mystery")


def test_custom_provider_requires_base_url():
    with pytest.raises(RuntimeError, match="base URL"):
        EmbeddingClient(provider="custom", model_name="m", api_key="k")


def test_ollama_provider_is_default(monkeypatch):
    client = EmbeddingClient()
    assert "Ollama" in client.device
    assert client.model_name == "mxbai-embed-large:latest"
