"""Recording-session lifecycle around the interaction classifier."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, List, Optional

from ..errors import SessionClosed
from ..events import FrictionSignal
from .classifier import InteractionClassifier
from .hesitation import HesitationTimer
from .state import ClassifierState

logger = logging.getLogger(__name__)

Sink = Callable[[str, List[FrictionSignal]], None]


def wall_clock_ms() -> float:
    return time.time() * 1000.0


class RecordingSession:
    """One recording interval: owns the classifier state and the idle timer.

    ``sink(session_id, signals)`` receives every non-empty batch of signals,
    from ``observe`` on the caller's thread and from ``tick`` on the timer
    thread. It is called after the session lock is released, so a slow sink
    never holds up the next event or tick.

    Idle time is measured on ``clock``: each event moves the idle baseline to
    its receipt time, whatever timestamp the page gave it.
    """

    def __init__(
        self,
        session_id: str,
        classifier: Optional[InteractionClassifier] = None,
        sink: Optional[Sink] = None,
        clock: Callable[[], float] = wall_clock_ms,
        use_timer: bool = True,
        timer_factory: Callable[..., HesitationTimer] = HesitationTimer,
    ):
        self.session_id = session_id
        self.classifier = classifier or InteractionClassifier()
        self.sink = sink
        self.clock = clock
        self.use_timer = use_timer
        self._timer_factory = timer_factory
        self._timer: Optional[HesitationTimer] = None
        self._lock = threading.RLock()
        self.state: Optional[ClassifierState] = None
        self.started_at: Optional[float] = None
        self.stopped_at: Optional[float] = None
        self.signal_count = 0

    @property
    def active(self) -> bool:
        return self.state is not None

    def start(self) -> "RecordingSession":
        with self._lock:
            if self.stopped_at is not None:
                raise SessionClosed(self.session_id)
            if self.state is not None:
                return self
            self.started_at = self.clock()
            self.state = self.classifier.new_state(self.started_at)
            if self.use_timer:
                interval_s = self.classifier.config.hesitation_interval_ms / 1000.0
                self._timer = self._timer_factory(interval_s, self.tick, name=f"session-{self.session_id}")
                self._timer.start()
        logger.info("Recording started for session %s", self.session_id)
        return self

    @property
    def lock(self) -> threading.RLock:
        """Held while an event or a tick is classified; ``stop`` waits for it."""
        return self._lock

    def observe(self, event: Any) -> List[FrictionSignal]:
        with self._lock:
            if self.state is None:
                raise SessionClosed(self.session_id)
            # idle time is measured on this session's clock, not the page's
            signals = self.classifier.observe(self.state, event, received_at=self.clock())
            self.signal_count += len(signals)
        self._emit(signals)
        return signals

    def tick(self, now: Optional[float] = None) -> List[FrictionSignal]:
        with self._lock:
            if self.state is None:
                return []
            signals = self.classifier.check_idle(self.state, self.clock() if now is None else now)
            self.signal_count += len(signals)
        self._emit(signals)
        return signals

    def stop(self) -> None:
        with self._lock:
            if self.state is None and self.stopped_at is not None:
                return
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self.state = None
            self.stopped_at = self.clock()
        logger.info("Recording stopped for session %s (%d signals)", self.session_id, self.signal_count)

    def _emit(self, signals: List[FrictionSignal]) -> None:
        if not signals:
            return
        for s in signals:
            logger.debug("session %s: %s (%s)", self.session_id, s.kind, s.message)
        if self.sink is not None:
            self.sink(self.session_id, signals)

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc):
        self.stop()
        return False
