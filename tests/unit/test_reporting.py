"""Tests for the batching friction reporter."""

from __future__ import annotations

import json
import threading
import time
import urllib.error
from unittest.mock import MagicMock

import pytest
from conftest import click

from uxinsight.events import FrictionSignal
from uxinsight.friction.session import RecordingSession
from uxinsight.reporting import FrictionReporter


def signal(ts: float, kind: str = "repeatedClicks") -> FrictionSignal:
    return FrictionSignal(kind=kind, timestamp=ts, message="User clicked the same element multiple times in succession",
                          metric=3)


@pytest.fixture
def urlopen(monkeypatch) -> MagicMock:
    m = MagicMock()
    monkeypatch.setattr("urllib.request.urlopen", m)
    return m


@pytest.fixture
def make_reporter():
    reporters = []

    def make(*args, **kw) -> FrictionReporter:
        rep = FrictionReporter(*args, **kw)
        reporters.append(rep)
        return rep

    yield make
    for rep in reporters:
        rep.close(timeout=2.0)


def posted(urlopen: MagicMock):
    req = urlopen.call_args.args[0]
    return req.full_url, json.loads(req.data)


class TestFrictionReporter:
    def test_flushes_when_batch_is_full(self, urlopen, make_reporter) -> None:
        rep = make_reporter("http://api.local/", batch_size=2, page="https://example.com/cart")
        rep("s1", [signal(1)])
        rep.wait()
        urlopen.assert_not_called()
        rep("s1", [signal(2)])
        rep.wait()

        url, body = posted(urlopen)
        assert url == "http://api.local/api/friction-points"
        assert [b["timestamp"] for b in body] == [1, 2]
        assert body[0]["sessionId"] == "s1"
        assert body[0]["page"] == "https://example.com/cart"
        assert rep.sent == 2
        assert rep.pending == 0

    def test_close_sends_the_rest(self, urlopen) -> None:
        rep = FrictionReporter("http://api.local", batch_size=10)
        rep("s1", [signal(1)])
        rep.close(timeout=2.0)
        assert len(posted(urlopen)[1]) == 1
        assert rep.flush() == 0

    def test_nothing_to_flush(self, urlopen, make_reporter) -> None:
        rep = make_reporter("http://api.local")
        assert rep.flush() == 0
        rep.wait()
        urlopen.assert_not_called()

    def test_failed_post_keeps_the_batch(self, urlopen, make_reporter) -> None:
        urlopen.side_effect = urllib.error.URLError("connection refused")
        rep = make_reporter("http://api.local", batch_size=1)
        rep("s1", [signal(1)])
        rep.wait()
        assert rep.pending == 1
        assert rep.sent == 0

        urlopen.side_effect = None
        rep("s1", [signal(2)])
        rep.wait()
        assert [b["timestamp"] for b in posted(urlopen)[1]] == [1, 2]
        assert rep.sent == 2

    def test_oldest_signals_are_dropped_when_full(self, urlopen, make_reporter) -> None:
        urlopen.side_effect = OSError("network down")
        rep = make_reporter("http://api.local", batch_size=100, max_pending=3)
        rep("s1", [signal(t) for t in range(5)])
        assert rep.flush() == 3
        rep.wait()
        urlopen.side_effect = None
        rep.flush()
        rep.wait()
        assert [b["timestamp"] for b in posted(urlopen)[1]] == [2, 3, 4]

    def test_is_a_session_sink(self, urlopen, make_reporter) -> None:
        rep = make_reporter("http://api.local", batch_size=1)
        with RecordingSession("s9", sink=rep, clock=lambda: 0.0, use_timer=False) as rec:
            for ts in (1, 2, 3):
                rec.observe(click(ts))
        rep.wait()
        (report,) = posted(urlopen)[1]
        assert report["kind"] == "repeatedClicks"
        assert report["target"]["selector"] == "#buy"

    def test_hanging_backend_never_stalls_observe(self, monkeypatch, make_reporter) -> None:
        release = threading.Event()

        def hang(req, timeout):
            release.wait(timeout)
            raise urllib.error.URLError("timed out")

        monkeypatch.setattr("urllib.request.urlopen", hang)
        rep = make_reporter("http://api.local", batch_size=1, timeout=2.0)
        rec = RecordingSession("s9", sink=rep, clock=lambda: 0.0, use_timer=False).start()
        try:
            t0 = time.monotonic()
            for ts in (1, 2, 3, 4):
                rec.observe(click(ts))
            assert time.monotonic() - t0 < 0.5
        finally:
            release.set()
            rec.stop()
