from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Optional, Tuple

from ..events import CursorPosition, ElementDescriptor

DEFAULT_POSITION_WINDOW = 100


@dataclass
class ConsecutiveAction:
    target_selector: str
    action_kind: str  # "click" | "delete" | "input"
    count: int = 1


@dataclass
class OpenField:
    start_time: float
    initial_value: Any = None


@dataclass
class ClassifierState:
    """Per-session state for the interaction classifier.

    Owned by whoever drives the session; the classifier never keeps its
    own copy. Drop it when recording stops.
    """

    last_interaction_time: Optional[float] = None
    last_mouse_position: Optional[CursorPosition] = None
    hover_target: Optional[ElementDescriptor] = None
    consecutive_action: Optional[ConsecutiveAction] = None
    open_fields: Dict[str, OpenField] = field(default_factory=dict)
    recent_positions: Deque[Tuple[float, float, float]] = field(
        default_factory=lambda: deque(maxlen=DEFAULT_POSITION_WINDOW)
    )

    @classmethod
    def begin(cls, now: float, position_window: int = DEFAULT_POSITION_WINDOW) -> "ClassifierState":
        return cls(last_interaction_time=now, recent_positions=deque(maxlen=position_window))

    def touch(self, timestamp: float) -> None:
        # batched delivery can reorder events slightly; never move backwards
        if self.last_interaction_time is None or timestamp > self.last_interaction_time:
            self.last_interaction_time = timestamp

    def record_action(self, selector: str, action_kind: str) -> int:
        """Extend or restart the repetition streak; returns the new count."""
        cur = self.consecutive_action
        if cur is not None and cur.target_selector == selector and cur.action_kind == action_kind:
            cur.count += 1
        else:
            self.consecutive_action = ConsecutiveAction(selector, action_kind)
        return self.consecutive_action.count

    def break_streak(self) -> None:
        self.consecutive_action = None
