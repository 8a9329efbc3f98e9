"""In-memory registry behind the API (no persistence across restarts)."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .errors import UnknownSession
from .schemas import (
    DashboardStats,
    FrictionPoint,
    FrictionReport,
    Recording,
    SessionCreate,
    SessionRecord,
    format_duration,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Store:
    def __init__(self):
        self._lock = threading.Lock()
        self.sessions: Dict[str, SessionRecord] = {}
        self.events: Dict[str, List[Dict[str, Any]]] = {}
        self.friction: List[FrictionPoint] = []
        self.recordings: Dict[str, Recording] = {}

    # ---------- sessions ----------

    def create_session(self, body: SessionCreate) -> SessionRecord:
        with self._lock:
            sid = f"s{len(self.sessions) + 1}"
            rec = SessionRecord(
                id=sid,
                user=body.user or f"User {len(self.sessions) + 1}",
                url=body.url,
                browser=body.browser,
                device=body.device,
                user_agent=body.user_agent,
                screen_size=body.screen_size,
                started_at=_now(),
                current_page=body.url,
            )
            self.sessions[sid] = rec
            self.events[sid] = []
            return rec

    def get_session(self, session_id: str) -> SessionRecord:
        with self._lock:
            rec = self.sessions.get(session_id)
        if rec is None:
            raise UnknownSession(session_id)
        return rec

    def list_sessions(self) -> List[SessionRecord]:
        with self._lock:
            return list(self.sessions.values())

    def end_session(self, session_id: str) -> SessionRecord:
        """Mark the session ended; also keeps its events as a recording unless one was uploaded."""
        with self._lock:
            rec = self.sessions.get(session_id)
            if rec is None:
                raise UnknownSession(session_id)
            if rec.ended_at is None:
                rec.ended_at = _now()
            if session_id not in self.recordings:
                self.recordings[session_id] = Recording(
                    id=session_id,
                    events=list(self.events.get(session_id, [])),
                    duration=format_duration(rec.duration_seconds()),
                )
            return rec

    # ---------- events ----------

    def add_events(self, session_id: str, events: List[Dict[str, Any]]) -> int:
        with self._lock:
            rec = self.sessions.get(session_id)
            if rec is None:
                raise UnknownSession(session_id)
            stored = self.events.setdefault(session_id, [])
            for ev in events:
                stored.append(ev)
                if ev.get("kind") == "pageLoad" and ev.get("url"):
                    rec.current_page = ev["url"]
            rec.event_count = len(stored)
            return len(stored)

    def events_for(self, session_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self.events.get(session_id, []))

    def current_page(self, session_id: str) -> Optional[str]:
        with self._lock:
            rec = self.sessions.get(session_id)
            return rec.current_page if rec else None

    # ---------- friction points ----------

    def record_friction(self, report: FrictionReport) -> Tuple[FrictionPoint, bool]:
        """Aggregate by (page, element, issue); returns (point, created)."""
        page, element, issue = report.key()
        with self._lock:
            if report.session_id in self.sessions:
                self.sessions[report.session_id].friction_points += 1
            for fp in self.friction:
                if (fp.page, fp.element, fp.issue) == (page, element, issue):
                    fp.occurrences += 1
                    fp.last_seen = _now()
                    if report.session_id and report.session_id not in fp.session_ids:
                        fp.session_ids.append(report.session_id)
                    return fp, False
            fp = FrictionPoint(
                id=f"fp{len(self.friction) + 1}",
                page=page,
                element=element,
                issue=issue,
                severity=report.severity_label(),
                kind=report.kind,
                last_seen=_now(),
                url=report.url or report.page,
                session_ids=[report.session_id] if report.session_id else [],
            )
            self.friction.append(fp)
            return fp, True

    def friction_points(self) -> List[FrictionPoint]:
        with self._lock:
            return list(self.friction)

    # ---------- recordings ----------

    def save_recording(self, recording: Recording) -> None:
        with self._lock:
            self.recordings[recording.id] = recording

    def get_recording(self, recording_id: str) -> Optional[Recording]:
        with self._lock:
            return self.recordings.get(recording_id)

    # ---------- stats ----------

    def stats(self) -> DashboardStats:
        with self._lock:
            sessions = list(self.sessions.values())
            spans = []
            for sid, evs in self.events.items():
                ts = [e["timestamp"] for e in evs if isinstance(e.get("timestamp"), (int, float))]
                if len(ts) >= 2:
                    spans.append((max(ts) - min(ts)) / 1000.0)
            n_points = len(self.friction)

        ended = [s for s in sessions if not s.active]
        durations = np.array([s.duration_seconds() for s in ended], dtype=float)
        return DashboardStats(
            total_sessions=len(sessions),
            active_sessions=len(sessions) - len(ended),
            friction_points=n_points,
            avg_session_duration=format_duration(float(durations.mean()) if durations.size else 0.0),
            completion_rate=int(round(100.0 * len(ended) / len(sessions))) if sessions else 0,
            time_on_task=format_duration(float(np.median(spans)) if spans else 0.0),
        )
