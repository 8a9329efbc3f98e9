from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, model_validator

from .events import ElementDescriptor, FrictionKind, FrictionSignal, CamelModel

Severity = Literal["high", "medium", "low"]

SEVERITY_BY_KIND: Dict[str, Severity] = {
    "javascriptError": "high",
    "formSubmitWithErrors": "high",
    "repeatedClicks": "medium",
    "repeatedDeletions": "medium",
    "formValidationError": "medium",
    "longFormInteraction": "low",
    "hesitation": "low",
}


def format_duration(seconds: Optional[float]) -> str:
    """Seconds -> "m:ss" as the dashboard shows it."""
    if not seconds or seconds < 0:
        return "0:00"
    seconds = int(round(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


# ---------- sessions ----------

class ScreenSize(CamelModel):
    width: int
    height: int


class SessionCreate(CamelModel):
    url: Optional[str] = None
    tab_id: Optional[int] = None
    user: Optional[str] = None
    user_agent: Optional[str] = None
    browser: Optional[str] = None
    device: Optional[str] = None
    screen_size: Optional[ScreenSize] = None
    timestamp: Optional[datetime] = None


class SessionEnd(CamelModel):
    end_time: Optional[datetime] = None


class SessionRecord(CamelModel):
    id: str
    user: str
    url: Optional[str] = None
    browser: Optional[str] = None
    device: Optional[str] = None
    user_agent: Optional[str] = None
    screen_size: Optional[ScreenSize] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    current_page: Optional[str] = None
    friction_points: int = 0
    event_count: int = 0

    @property
    def active(self) -> bool:
        return self.ended_at is None

    def duration_seconds(self, now: Optional[datetime] = None) -> float:
        end = self.ended_at or now or datetime.now(timezone.utc)
        return max((end - self.started_at).total_seconds(), 0.0)

    def to_json_dict(self) -> Dict[str, Any]:
        d = super().to_json_dict()
        d["date"] = self.started_at.strftime("%Y-%m-%d")
        d["time"] = self.started_at.strftime("%H:%M")
        d["duration"] = format_duration(self.duration_seconds())
        d["active"] = self.active
        return d


# ---------- friction points ----------

class FrictionReport(CamelModel):
    """One friction observation posted to the API.

    Either a classifier signal (kind/message/target...) or a hand-written
    report with page/element/issue; the aggregation key is always
    (page, element, issue).
    """

    session_id: Optional[str] = None
    kind: Optional[FrictionKind] = None
    message: Optional[str] = None
    timestamp: Optional[float] = None
    target: Optional[ElementDescriptor] = None
    metric: Optional[float] = None
    page: Optional[str] = None
    element: Optional[str] = None
    issue: Optional[str] = None
    severity: Optional[Severity] = None
    url: Optional[str] = None

    @model_validator(mode="after")
    def _needs_issue(self):
        if not (self.issue or self.message):
            raise ValueError("a friction report needs an issue or a message")
        return self

    @classmethod
    def from_signal(cls, signal: FrictionSignal, session_id: Optional[str] = None,
                    page: Optional[str] = None) -> "FrictionReport":
        return cls(
            session_id=session_id,
            kind=signal.kind,
            message=signal.message,
            timestamp=signal.timestamp,
            target=signal.target,
            metric=signal.metric,
            page=page,
        )

    def key(self):
        return (self.page_label(), self.element_label(), self.issue_label())

    def page_label(self) -> str:
        return self.page or self.url or "unknown"

    def element_label(self) -> str:
        if self.element:
            return self.element
        if self.target is not None:
            return self.target.selector or self.target.tag
        return "page"

    def issue_label(self) -> str:
        return self.issue or self.message

    def severity_label(self) -> Severity:
        if self.severity:
            return self.severity
        return SEVERITY_BY_KIND.get(self.kind or "", "low")


class FrictionPoint(CamelModel):
    id: str
    page: str
    element: str
    issue: str
    severity: Severity
    kind: Optional[FrictionKind] = None
    occurrences: int = 1
    last_seen: datetime
    url: Optional[str] = None
    session_ids: List[str] = Field(default_factory=list)


# ---------- recordings ----------

class RecordingUpload(CamelModel):
    events: List[Dict[str, Any]] = Field(default_factory=list)
    duration: Optional[float] = Field(None, description="seconds")


class Recording(CamelModel):
    id: str
    events: List[Dict[str, Any]] = Field(default_factory=list)
    duration: str = "0:00"


class DashboardStats(CamelModel):
    total_sessions: int
    active_sessions: int
    friction_points: int
    avg_session_duration: str
    completion_rate: int
    time_on_task: str
