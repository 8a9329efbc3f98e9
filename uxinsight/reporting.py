"""Ship friction signals to the backend as JSON over HTTP."""

from __future__ import annotations

import json
import logging
import queue
import threading
import urllib.error
import urllib.request
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from .events import FrictionSignal

logger = logging.getLogger(__name__)

FRICTION_PATH = "/api/friction-points"


class FrictionReporter:
    """Batching session sink with a background sender.

    Pass an instance as ``RecordingSession(sink=...)``. Calling it only
    buffers; once ``batch_size`` signals are pending (and on ``flush()`` /
    ``close()``) the batch is handed to a sender thread that posts it as a
    list to ``/api/friction-points``. A failed post puts the batch back in
    the buffer for the next flush; beyond ``max_pending`` the oldest
    signals are dropped.
    """

    def __init__(self, base_url: str, batch_size: int = 20, timeout: float = 5.0,
                 max_pending: int = 1000, page: Optional[str] = None):
        self.url = base_url.rstrip("/") + FRICTION_PATH
        self.batch_size = batch_size
        self.timeout = timeout
        self.page = page
        self._pending: Deque[Dict[str, Any]] = deque(maxlen=max_pending)
        self._lock = threading.Lock()
        self._outbox: "queue.Queue[Optional[List[Dict[str, Any]]]]" = queue.Queue()
        self._sender = threading.Thread(target=self._run, name="friction-reporter", daemon=True)
        self._closed = False
        self.sent = 0
        self._sender.start()

    def __call__(self, session_id: str, signals: List[FrictionSignal]) -> None:
        with self._lock:
            for s in signals:
                report = s.to_json_dict()
                report["sessionId"] = session_id
                if self.page:
                    report["page"] = self.page
                self._pending.append(report)
            full = len(self._pending) >= self.batch_size
        if full:
            self.flush()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def flush(self) -> int:
        """Hand everything pending to the sender; returns how many signals."""
        with self._lock:
            if self._closed:
                return 0
            batch = list(self._pending)
            self._pending.clear()
        if batch:
            self._outbox.put(batch)
        return len(batch)

    def wait(self) -> None:
        """Block until every batch handed over so far has been attempted."""
        self._outbox.join()

    def close(self, timeout: Optional[float] = None) -> None:
        self.flush()
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._outbox.put(None)
        self._sender.join(timeout)

    def _run(self) -> None:
        while True:
            batch = self._outbox.get()
            try:
                if batch is None:
                    return
                self._send(batch)
            finally:
                self._outbox.task_done()

    def _send(self, batch: List[Dict[str, Any]]) -> None:
        try:
            self._post(batch)
        except (urllib.error.URLError, OSError) as e:
            logger.warning("could not report %d friction signals to %s: %s", len(batch), self.url, e)
            with self._lock:
                # put the failed batch back in front of anything queued meanwhile
                self._pending = deque(batch + list(self._pending), maxlen=self._pending.maxlen)
            return
        self.sent += len(batch)

    def _post(self, batch: List[Dict[str, Any]]) -> None:
        data = json.dumps(batch).encode("utf-8")
        req = urllib.request.Request(self.url, data=data, headers={"Content-Type": "application/json"})
        with urllib.request.urlopen(req, timeout=self.timeout) as r:
            r.read()
