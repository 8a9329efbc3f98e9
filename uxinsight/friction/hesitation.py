from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class HesitationTimer:
    """Repeating timer that calls ``callback`` every ``interval_s`` seconds.

    The next run is armed only after the current callback returns. After
    ``cancel()`` nothing is re-armed; a callback already past its start
    check still runs to completion.
    """

    def __init__(self, interval_s: float, callback: Callable[[], None], name: str = "hesitation"):
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.interval_s = interval_s
        self.callback = callback
        self.name = name
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._cancelled = False
        self.fired = 0

    @property
    def active(self) -> bool:
        return self._timer is not None and not self._cancelled

    def start(self) -> None:
        with self._lock:
            if self._cancelled:
                raise RuntimeError(f"timer {self.name} was cancelled")
            if self._timer is None:
                self._arm()

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _arm(self) -> None:
        t = threading.Timer(self.interval_s, self._fire)
        t.daemon = True
        t.name = f"{self.name}-timer"
        self._timer = t
        t.start()

    def _fire(self) -> None:
        with self._lock:
            if self._cancelled:
                return
        try:
            self.callback()
        except Exception:
            logger.exception("hesitation callback for %s failed", self.name)
        with self._lock:
            self.fired += 1
            if not self._cancelled:
                self._arm()
