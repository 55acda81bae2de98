"""Split document text into bounded, word-boundary-respecting chunks."""

from __future__ import annotations

from typing import Iterator

from .config import DEFAULT_CHUNK_SIZE


def build_document_text(title: str, body: str) -> str:
    """Return the text that gets chunked: the title followed by the page body."""
    return f"{title}\n\n{body}"


def chunk_text(text: str, max_length: int = DEFAULT_CHUNK_SIZE) -> Iterator[str]:
    """Yield chunks of at most *max_length* characters.

    Each cut happens at the last whitespace within the limit. A run with no
    whitespace inside the limit is cut exactly at *max_length*.
    """

    if max_length < 1:
        raise ValueError("max_length must be >= 1")
    remaining = (text or "").lstrip()
    while remaining:
        if len(remaining) <= max_length:
            yield remaining
            return
        cut = _last_whitespace(remaining, max_length)
        if cut is None:
            prefix = remaining[:max_length]
            rest = remaining[max_length:]
        else:
            prefix = remaining[:cut].rstrip()
            rest = remaining[cut:]
        yield prefix
        remaining = rest.lstrip()


def _last_whitespace(text: str, max_length: int) -> int | None:
    for idx in range(min(max_length, len(text) - 1), 0, -1):
        if text[idx].isspace():
            return idx
    return None
