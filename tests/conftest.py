import numpy as np
import pytest

from semmark.bookmarks import BookmarkNode
from semmark.embedding import EmbeddingClient
from semmark.fetcher import FetchOutcome, FetchStatus
from semmark.store import BookmarkStore

VOCABULARY = ("python", "cooking", "travel", "music")


class KeywordBackend:
    """Embeds text as keyword counts so similarity follows topic words."""

    device = "keyword"

    def __init__(self):
        self.calls = []

    def embed(self, text):
        self.calls.append(text)
        lowered = text.lower()
        counts = [float(lowered.count(word)) for word in VOCABULARY]
        return np.asarray([*counts, 0.01], dtype=np.float32)


class PageFetcher:
    """Serves canned outcomes by URL; unknown URLs get a generic article."""

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.calls = []

    def fetch(self, url):
        self.calls.append(url)
        outcome = self.pages.get(url)
        if outcome is None:
            return FetchOutcome(url=url, status=FetchStatus.OK, text=article("general"))
        if isinstance(outcome, str):
            return FetchOutcome(url=url, status=FetchStatus.OK, text=outcome)
        return outcome


class StaticSource:
    def __init__(self, tree):
        self.tree = tree

    def get_tree(self):
        return list(self.tree)


def article(topic: str, repeat: int = 40) -> str:
    return " ".join(f"{topic} notes" for _ in range(repeat))


def http_error(url: str, code: int) -> FetchOutcome:
    return FetchOutcome(
        url=url,
        status=FetchStatus.HTTP_ERROR,
        error=f"HTTP {code}",
        status_code=code,
    )


def sample_tree():
    return [
        BookmarkNode(
            id="1",
            title="Bookmarks bar",
            children=(
                BookmarkNode(
                    id="10",
                    title="Dev",
                    children=(
                        BookmarkNode(id="101", title="Python docs", url="https://python.test/docs"),
                        BookmarkNode(id="102", title="Gone page", url="https://gone.test/"),
                    ),
                ),
                BookmarkNode(
                    id="20",
                    title="Food",
                    children=(
                        BookmarkNode(id="201", title="Cooking blog", url="https://cooking.test/"),
                    ),
                ),
            ),
        ),
        BookmarkNode(id="2", title="Other bookmarks"),
    ]


def sample_pages():
    return {
        "https://python.test/docs": article("python"),
        "https://gone.test/": http_error("https://gone.test/", 404),
        "https://cooking.test/": article("cooking"),
    }


@pytest.fixture
def store(tmp_path):
    with BookmarkStore(tmp_path / "semmark.db") as opened:
        yield opened


@pytest.fixture
def keyword_backend():
    return KeywordBackend()


@pytest.fixture
def embedder(keyword_backend):
    return EmbeddingClient(keyword_backend)


@pytest.fixture
def fetcher():
    return PageFetcher(sample_pages())


@pytest.fixture
def tree():
    return sample_tree()


@pytest.fixture
def source(tree):
    return StaticSource(tree)
