"""Utility helpers shared across semmark."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator

logger = logging.getLogger(__name__)


@contextmanager
def heartbeat(interval: float, on_beat: Callable[[], None] | None = None) -> Iterator[None]:
    """Call *on_beat* every *interval* seconds while the block runs.

    The background thread is stopped when the block exits, whether it
    returns normally or raises.
    """

    if on_beat is None or interval <= 0:
        yield
        return
    stop = threading.Event()

    def _beat() -> None:
        while not stop.wait(interval):
            try:
                on_beat()
            except Exception:  # pragma: no cover
                logger.exception("Heartbeat callback failed")

    worker = threading.Thread(target=_beat, name="semmark-heartbeat", daemon=True)
    worker.start()
    try:
        yield
    finally:
        stop.set()
        worker.join(timeout=max(interval, 1.0))


def plural(count: int) -> str:
    return "" if count == 1 else "s"
