"""Fetch bookmarked pages and extract their readable text."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import requests
from bs4 import BeautifulSoup

from .config import DEFAULT_FETCH_TIMEOUT

logger = logging.getLogger(__name__)

MAX_WORD_LENGTH = 150
MAX_CONTENT_BYTES = 5 * 1024 * 1024
READ_CHUNK_BYTES = 64 * 1024
TEXTUAL_CONTENT_TYPES = ("text/html", "text/plain")
STRIPPED_TAGS = ["script", "style", "nav", "footer", "header", "aside"]
DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,text/plain;q=0.9,*/*;q=0.5",
    "Accept-Language": "en-US,en;q=0.9",
}

# Code, logs and other machine text that would pollute embeddings.
CLEANING_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"https?://[^\s/$.?#].[^\s]*"),
    re.compile(r"(?:[a-zA-Z]:)?(?:\\|/)[^\s:\"|*?<>]+/[^\s:\"|*?<>]*"),
    re.compile(r"^\s*[$#%>]\s*.*", re.MULTILINE),
    re.compile(r"^\s*\w+\s*=\s*.*$", re.MULTILINE),
    re.compile(r"^\s*.*\b\w+\.\w+\(.*?\).*$", re.MULTILINE),
    re.compile(r"^\s*\[.*,.*\]\s*$", re.MULTILINE),
    re.compile(r"^\s*\".*\"\s*:\s*\".*\",?\s*$", re.MULTILINE),
    re.compile(r"^\s*(.)\1{4,}\s*$", re.MULTILINE),
    re.compile(r"^\s*[\w.-]+\s*\(\d{4}-\d{2}-\d{2}\)\s*$", re.MULTILINE),
    re.compile(r"b([\"']).*?\1"),
    re.compile(
        r"^.*\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\s*→\s*\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}.*$",
        re.MULTILINE,
    ),
    re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z\+\d{2}:\d{2}"),
)


class FetchStatus(str, Enum):
    OK = "ok"
    HTTP_ERROR = "http_error"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    UNSUPPORTED_CONTENT = "unsupported_content"


@dataclass(slots=True)
class FetchOutcome:
    """Result of fetching one URL; ``text`` is set only when ``status`` is OK."""

    url: str
    status: FetchStatus
    text: str = ""
    error: str | None = None
    status_code: int | None = None


class ContentFetcher(Protocol):
    def fetch(self, url: str) -> FetchOutcome:
        raise NotImplementedError  # pragma: no cover


def clean_text(raw: str) -> str:
    """Strip machine-looking lines, split overlong words and collapse whitespace."""

    text = raw
    for pattern in CLEANING_PATTERNS:
        text = pattern.sub("", text)
    words: list[str] = []
    for word in text.split():
        if len(word) > MAX_WORD_LENGTH:
            words.extend(
                word[idx : idx + MAX_WORD_LENGTH]
                for idx in range(0, len(word), MAX_WORD_LENGTH)
            )
        else:
            words.append(word)
    return " ".join(words)


def extract_text(html: str) -> str:
    """Return the cleaned readable text of an HTML document."""

    soup = BeautifulSoup(html, "html.parser")
    for element in soup(STRIPPED_TAGS):
        element.decompose()
    root = soup.find("article") or soup.find("main") or soup.body or soup
    return clean_text(root.get_text(separator="\n"))


def _is_textual(content_type: str) -> bool:
    lowered = content_type.lower()
    return any(kind in lowered for kind in TEXTUAL_CONTENT_TYPES)


class WebContentFetcher:
    """Content fetcher built on requests and BeautifulSoup."""

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(DEFAULT_HEADERS)

    def fetch(self, url: str) -> FetchOutcome:
        """Fetch *url*, reading the body only for textual responses.

        The body is streamed and cut off after ``MAX_CONTENT_BYTES``.
        """

        try:
            with self._session.get(url, timeout=self.timeout, stream=True) as response:
                if response.status_code >= 400:
                    return FetchOutcome(
                        url=url,
                        status=FetchStatus.HTTP_ERROR,
                        error=f"HTTP {response.status_code}: {response.reason}",
                        status_code=response.status_code,
                    )
                content_type = response.headers.get("Content-Type", "")
                if not _is_textual(content_type):
                    return FetchOutcome(
                        url=url,
                        status=FetchStatus.UNSUPPORTED_CONTENT,
                        error=f"Unsupported content type: {content_type or 'N/A'}",
                        status_code=response.status_code,
                    )
                body = _read_body(response, url)
                status_code = response.status_code
        except requests.exceptions.Timeout as exc:
            logger.info("Timed out fetching %s", url)
            return FetchOutcome(url=url, status=FetchStatus.TIMEOUT, error=str(exc))
        except requests.exceptions.RequestException as exc:
            logger.info("Network failure fetching %s: %s", url, exc)
            return FetchOutcome(url=url, status=FetchStatus.NETWORK_ERROR, error=str(exc))
        if "text/html" in content_type.lower():
            text = extract_text(body)
        else:
            text = clean_text(body)
        return FetchOutcome(
            url=url,
            status=FetchStatus.OK,
            text=text,
            status_code=status_code,
        )


def _read_body(response: requests.Response, url: str) -> str:
    received = bytearray()
    for block in response.iter_content(chunk_size=READ_CHUNK_BYTES):
        received.extend(block)
        if len(received) >= MAX_CONTENT_BYTES:
            logger.info("Truncating %s after %d bytes", url, MAX_CONTENT_BYTES)
            del received[MAX_CONTENT_BYTES:]
            break
    try:
        return bytes(received).decode(response.encoding or "utf-8", errors="replace")
    except LookupError:
        return bytes(received).decode("utf-8", errors="replace")
