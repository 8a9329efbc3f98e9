"""Friction-point heuristics over a live stream of interaction events.

``InteractionClassifier.observe`` turns one event into zero or more
``FrictionSignal`` objects, updating a caller-owned ``ClassifierState``.
``check_idle`` is the one time-driven rule (hesitation) and is meant to
be called on a fixed cadence by the session that owns the state.

No browser API is referenced here, so the same code runs live behind
the API and offline in the replay worker.
"""

from __future__ import annotations

import logging
from math import hypot
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ..config import ClassifierConfig
from ..errors import MalformedEventIgnored
from ..events import (
    EVENT_TYPES,
    ClickEvent,
    CursorPosition,
    FormBlurEvent,
    FormFocusEvent,
    FormInputEvent,
    FormSubmitEvent,
    FrictionSignal,
    JsErrorEvent,
    MouseMoveEvent,
    ValidationErrorEvent,
    parse_event,
)
from .state import ClassifierState, OpenField

logger = logging.getLogger(__name__)

DELETE_MARKERS = ("delete", "backspace")


def is_delete_input(input_type: Optional[str]) -> bool:
    if not input_type:
        return False
    t = input_type.lower()
    return any(m in t for m in DELETE_MARKERS)


class InteractionClassifier:
    def __init__(self, config: Optional[ClassifierConfig] = None):
        self.config = config or ClassifierConfig()
        self._handlers: Dict[str, Callable] = {
            "click": self._on_click,
            "mouseMove": self._on_mouse_move,
            "formFocus": self._on_focus,
            "formBlur": self._on_blur,
            "formInput": self._on_input,
            "formSubmit": self._on_submit,
            "validationError": self._on_validation_error,
            "jsError": self._on_js_error,
        }

    def new_state(self, now: float) -> ClassifierState:
        return ClassifierState.begin(now, position_window=self.config.position_window)

    def observe(self, state: ClassifierState, event: Union[Mapping[str, Any], Any],
                received_at: Optional[float] = None) -> List[FrictionSignal]:
        """Classify one event.

        ``received_at`` moves the idle baseline instead of the event's own
        timestamp; a live session passes its clock here so that
        ``check_idle`` compares times from a single clock.
        """
        if isinstance(event, Mapping):
            try:
                event = parse_event(event)
            except MalformedEventIgnored as e:
                logger.debug("MalformedEventIgnored: %s", e.reason)
                return []
        if not isinstance(event, EVENT_TYPES):
            logger.debug("MalformedEventIgnored: not an interaction event (%r)", type(event).__name__)
            return []

        state.touch(event.timestamp if received_at is None else received_at)
        handler = self._handlers.get(event.kind)
        if handler is None:
            # scroll, pageLoad: only keep the session alive
            return []
        return handler(state, event)

    def check_idle(self, state: ClassifierState, now: float) -> List[FrictionSignal]:
        """Hesitation check; emits once per call while the user stays idle."""
        if state.last_interaction_time is None:
            return []
        idle = now - state.last_interaction_time
        if idle <= self.config.hesitation_ms:
            return []
        return [FrictionSignal(
            kind="hesitation",
            timestamp=now,
            target=state.hover_target,
            metric=idle,
            position=state.last_mouse_position,
            message="User hesitated/paused on this element" if state.hover_target
            else "User paused without interacting with the page",
        )]

    # ---------- event handlers ----------

    def _on_click(self, state: ClassifierState, ev: ClickEvent) -> List[FrictionSignal]:
        if ev.x is not None and ev.y is not None:
            state.last_mouse_position = CursorPosition(x=ev.x, y=ev.y)
        if ev.target is not None:
            state.hover_target = ev.target

        selector = ev.selector
        if selector is None:
            # a click we cannot attribute still interrupts any streak
            state.break_streak()
            return []
        count = state.record_action(selector, "click")
        if count < self.config.repeated_clicks:
            return []
        return [FrictionSignal(
            kind="repeatedClicks",
            timestamp=ev.timestamp,
            target=ev.target,
            metric=count,
            message="User clicked the same element multiple times in succession",
        )]

    def _on_mouse_move(self, state: ClassifierState, ev: MouseMoveEvent) -> List[FrictionSignal]:
        if ev.target is not None:
            state.hover_target = ev.target
        if ev.x is None or ev.y is None:
            return []
        last = state.last_mouse_position
        if last is not None and hypot(ev.x - last.x, ev.y - last.y) <= self.config.min_move_px:
            return []
        state.last_mouse_position = CursorPosition(x=ev.x, y=ev.y)
        state.recent_positions.append((ev.x, ev.y, ev.timestamp))
        return []

    def _on_focus(self, state: ClassifierState, ev: FormFocusEvent) -> List[FrictionSignal]:
        selector = ev.selector
        if selector is not None:
            state.open_fields[selector] = OpenField(start_time=ev.timestamp, initial_value=ev.target.value)
        return []

    def _on_blur(self, state: ClassifierState, ev: FormBlurEvent) -> List[FrictionSignal]:
        signals = []
        selector = ev.selector
        opened = state.open_fields.pop(selector, None) if selector is not None else None
        if opened is not None:
            elapsed = ev.timestamp - opened.start_time
            if elapsed > self.config.long_interaction_ms and ev.target.value != opened.initial_value:
                signals.append(FrictionSignal(
                    kind="longFormInteraction",
                    timestamp=ev.timestamp,
                    target=ev.target,
                    metric=elapsed,
                    message="User spent a long time filling out this field",
                ))
        if ev.valid is False:
            signals.append(FrictionSignal(
                kind="formValidationError",
                timestamp=ev.timestamp,
                target=ev.target,
                message=ev.validation_message or "Field has validation errors after user interaction",
            ))
        return signals

    def _on_input(self, state: ClassifierState, ev: FormInputEvent) -> List[FrictionSignal]:
        selector = ev.selector
        if selector is None:
            state.break_streak()
            return []
        # without inputType we cannot tell a deletion apart; count it as plain input
        deleting = self.config.detect_deletions and is_delete_input(ev.input_type)
        count = state.record_action(selector, "delete" if deleting else "input")
        if not deleting or count < self.config.repeated_deletions:
            return []
        return [FrictionSignal(
            kind="repeatedDeletions",
            timestamp=ev.timestamp,
            target=ev.target,
            metric=count,
            message="User repeatedly deleted input, possibly indicating confusion",
        )]

    def _on_submit(self, state: ClassifierState, ev: FormSubmitEvent) -> List[FrictionSignal]:
        if not ev.invalid_fields:
            return []
        return [FrictionSignal(
            kind="formSubmitWithErrors",
            timestamp=ev.timestamp,
            target=ev.target,
            metric=len(ev.invalid_fields),
            invalid_fields=list(ev.invalid_fields),
            message="User attempted to submit form with validation errors",
        )]

    def _on_validation_error(self, state: ClassifierState, ev: ValidationErrorEvent) -> List[FrictionSignal]:
        return [FrictionSignal(
            kind="formValidationError",
            timestamp=ev.timestamp,
            target=ev.target,
            message=ev.message or "Field validation failed",
        )]

    def _on_js_error(self, state: ClassifierState, ev: JsErrorEvent) -> List[FrictionSignal]:
        return [FrictionSignal(
            kind="javascriptError",
            timestamp=ev.timestamp,
            target=ev.target,
            message=ev.message or "Uncaught script error",
            source=ev.source,
            line=ev.line,
            column=ev.column,
        )]
