import pytest
import requests

from semmark import fetcher as fetcher_module
from semmark.fetcher import (
    DEFAULT_HEADERS,
    MAX_WORD_LENGTH,
    FetchStatus,
    WebContentFetcher,
    clean_text,
    extract_text,
)


class FakeResponse:
    def __init__(
        self,
        status_code=200,
        text="",
        content_type="text/html; charset=utf-8",
        reason="OK",
        body=None,
        encoding="utf-8",
    ):
        self.status_code = status_code
        self.reason = reason
        self.encoding = encoding
        self.headers = {"Content-Type": content_type} if content_type else {}
        self.body = body if body is not None else text.encode("utf-8")
        self.read = 0
        self.closed = False

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.body), chunk_size):
            self.read += 1
            yield self.body[start : start + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True


class FakeSession:
    def __init__(self, response=None, error=None):
        self.headers = {}
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, timeout=None, stream=False):
        self.calls.append((url, timeout, stream))
        if self.error is not None:
            raise self.error
        return self.response


def test_clean_text_strips_machine_lines():
    raw = "Intro paragraph here\n$ pip install thing\nsee https://example.com/page now\nvalue = 42\nOutro"
    cleaned = clean_text(raw)
    assert "pip install" not in cleaned
    assert "https://" not in cleaned
    assert "value" not in cleaned
    assert cleaned.startswith("Intro paragraph here")
    assert cleaned.endswith("Outro")


def test_clean_text_splits_overlong_words():
    cleaned = clean_text("a" * (MAX_WORD_LENGTH * 2 + 5))
    parts = cleaned.split(" ")
    assert [len(part) for part in parts] == [MAX_WORD_LENGTH, MAX_WORD_LENGTH, 5]


def test_extract_text_prefers_article_and_drops_chrome():
    html = """
    <html><body>
      <nav>Menu Home About</nav>
      <article><h1>Title</h1><p>Body text of the article.</p><script>var x;</script></article>
      <footer>Copyright</footer>
    </body></html>
    """
    text = extract_text(html)
    assert "Body text of the article." in text
    assert "Menu" not in text
    assert "Copyright" not in text
    assert "var x" not in text


def test_extract_text_falls_back_to_body():
    text = extract_text("<html><body><p>Only body content</p></body></html>")
    assert text == "Only body content"


def test_fetch_html_page():
    session = FakeSession(FakeResponse(text="<html><body><main>Readable words</main></body></html>"))
    fetcher = WebContentFetcher(timeout=3.0, session=session)

    outcome = fetcher.fetch("https://example.com")

    assert outcome.status is FetchStatus.OK
    assert outcome.text == "Readable words"
    assert session.calls == [("https://example.com", 3.0, True)]
    assert session.response.closed
    assert session.headers["User-Agent"] == DEFAULT_HEADERS["User-Agent"]


def test_fetch_plain_text_page():
    session = FakeSession(FakeResponse(text="plain   text\nbody", content_type="text/plain"))
    outcome = WebContentFetcher(session=session).fetch("https://example.com/a.txt")
    assert outcome.status is FetchStatus.OK
    assert outcome.text == "plain text body"


def test_fetch_http_error_keeps_status_code():
    session = FakeSession(FakeResponse(status_code=404, reason="Not Found"))
    outcome = WebContentFetcher(session=session).fetch("https://example.com/missing")
    assert outcome.status is FetchStatus.HTTP_ERROR
    assert outcome.status_code == 404
    assert "404" in outcome.error


def test_fetch_rejects_binary_content_without_reading_it():
    response = FakeResponse(content_type="application/pdf", body=b"%PDF" * 1000)
    session = FakeSession(response)
    outcome = WebContentFetcher(session=session).fetch("https://example.com/file.pdf")
    assert outcome.status is FetchStatus.UNSUPPORTED_CONTENT
    assert outcome.text == ""
    assert response.read == 0
    assert response.closed


def test_fetch_caps_body_size(monkeypatch):
    monkeypatch.setattr(fetcher_module, "MAX_CONTENT_BYTES", 10)
    monkeypatch.setattr(fetcher_module, "READ_CHUNK_BYTES", 4)
    response = FakeResponse(text="abcdefghijklmnopqrstuvwxyz", content_type="text/plain")
    outcome = WebContentFetcher(session=FakeSession(response)).fetch("https://example.com/big.txt")
    assert outcome.status is FetchStatus.OK
    assert outcome.text == "abcdefghij"
    assert response.read == 3


def test_fetch_decodes_with_response_encoding():
    body = "caf\u00e9 cr\u00e8me".encode("latin-1")
    response = FakeResponse(body=body, content_type="text/plain; charset=latin-1", encoding="latin-1")
    outcome = WebContentFetcher(session=FakeSession(response)).fetch("https://example.com/fr.txt")
    assert outcome.text == "caf\u00e9 cr\u00e8me"


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (requests.exceptions.ConnectTimeout("slow"), FetchStatus.TIMEOUT),
        (requests.exceptions.ReadTimeout("slow"), FetchStatus.TIMEOUT),
        (requests.exceptions.ConnectionError("refused"), FetchStatus.NETWORK_ERROR),
    ],
)
def test_fetch_transport_failures(error, status):
    outcome = WebContentFetcher(session=FakeSession(error=error)).fetch("https://example.com")
    assert outcome.status is status
    assert outcome.error
