"""Classify fetch outcomes into usable content, soft failures and dead links."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from importlib import resources
from pathlib import Path
from typing import Iterable

from ..fetcher import FetchOutcome, FetchStatus

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 100
MIN_ALNUM_RATIO = 0.5
BUNDLED_ANTI_PATTERNS = "scrape_clean.txt"


class Verdict(str, Enum):
    USABLE = "usable"
    SOFT_FAILURE = "soft_failure"
    DEAD_LINK = "dead_link"


@dataclass(frozen=True, slots=True)
class Classification:
    verdict: Verdict
    text: str = ""
    reason: str | None = None

    @property
    def usable(self) -> bool:
        return self.verdict is Verdict.USABLE


def parse_anti_patterns(lines: Iterable[str]) -> tuple[str, ...]:
    patterns: list[str] = []
    for line in lines:
        phrase = line.strip().lower()
        if not phrase or phrase.startswith("#"):
            continue
        patterns.append(phrase)
    return tuple(patterns)


def load_anti_patterns(path: Path | str | None = None) -> tuple[str, ...]:
    """Read the anti-pattern phrase list from *path*, or the bundled list when unset."""

    if path is None:
        content = (
            resources.files("semmark.data")
            .joinpath(BUNDLED_ANTI_PATTERNS)
            .read_text(encoding="utf-8")
        )
    else:
        content = Path(path).expanduser().read_text(encoding="utf-8")
    patterns = parse_anti_patterns(content.splitlines())
    logger.debug("Loaded %d anti-patterns", len(patterns))
    return patterns


class QualityGate:
    """Decides whether fetched text is worth embedding and whether a URL is dead."""

    def __init__(
        self,
        anti_patterns: Iterable[str] = (),
        *,
        min_length: int = MIN_TEXT_LENGTH,
        min_alnum_ratio: float = MIN_ALNUM_RATIO,
    ) -> None:
        self.anti_patterns = parse_anti_patterns(anti_patterns)
        self.min_length = min_length
        self.min_alnum_ratio = min_alnum_ratio

    def rejection_reason(self, text: str) -> str | None:
        """Return why *text* fails the quality check, or None when it passes."""

        if not text or len(text) < self.min_length:
            return f"text shorter than {self.min_length} characters"
        alnum = sum(1 for char in text if char.isalnum())
        if alnum / len(text) < self.min_alnum_ratio:
            return "text is mostly non-alphanumeric"
        lowered = text.lower()
        for pattern in self.anti_patterns:
            if pattern in lowered:
                return f"text contains anti-pattern '{pattern}'"
        return None

    def is_usable_text(self, text: str) -> bool:
        return self.rejection_reason(text) is None

    def classify(self, outcome: FetchOutcome) -> Classification:
        status = outcome.status
        if status is FetchStatus.NETWORK_ERROR:
            return Classification(Verdict.DEAD_LINK, reason=outcome.error)
        if status is FetchStatus.HTTP_ERROR:
            code = outcome.status_code or 0
            if 400 <= code < 500:
                return Classification(Verdict.DEAD_LINK, reason=outcome.error)
            return Classification(Verdict.SOFT_FAILURE, reason=outcome.error)
        if status is not FetchStatus.OK:
            return Classification(Verdict.SOFT_FAILURE, reason=outcome.error)
        reason = self.rejection_reason(outcome.text)
        if reason is not None:
            return Classification(Verdict.SOFT_FAILURE, reason=reason)
        return Classification(Verdict.USABLE, text=outcome.text)
