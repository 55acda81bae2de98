import threading

import pytest

from semmark.utils import heartbeat, plural


def test_heartbeat_fires_while_block_runs():
    beats = threading.Event()

    with heartbeat(0.01, beats.set):
        assert beats.wait(2.0)


def test_heartbeat_stops_after_block():
    count = []

    with heartbeat(0.01, lambda: count.append(1)):
        pass
    settled = len(count)
    threading.Event().wait(0.05)
    assert len(count) == settled


def test_heartbeat_stops_when_block_raises():
    before = {thread.name for thread in threading.enumerate()}
    with pytest.raises(ValueError):
        with heartbeat(0.01, lambda: None):
            raise ValueError("boom")
    names = {thread.name for thread in threading.enumerate()} - before
    assert "semmark-heartbeat" not in names


def test_heartbeat_without_callback_is_noop():
    with heartbeat(0.01, None):
        pass


def test_plural():
    assert plural(1) == ""
    assert plural(0) == "s"
    assert plural(2) == "s"
