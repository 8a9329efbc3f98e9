from __future__ import annotations
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from .errors import MalformedEventIgnored
from .privacy.redaction import redact_value


class CamelModel(BaseModel):
    # camelCase on the wire (what the extension sends), snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ElementDescriptor(CamelModel):
    selector: str = Field("", description="CSS selector; empty when unknown")
    tag: str = "unknown"
    id: str = ""
    classes: List[str] = Field(default_factory=list)
    input_type: str = ""
    name: str = ""
    autocomplete: Optional[str] = None
    value: Optional[Any] = None
    text: Optional[str] = None
    visible: bool = True

    @model_validator(mode="before")
    @classmethod
    def _lenient(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        # null means "not captured"; fall back to the field default
        data = {k: v for k, v in data.items() if v is not None}
        # the extension sends className, a space separated string
        if isinstance(data.get("classes"), str):
            data["classes"] = data["classes"].split()
        return data

    @model_validator(mode="after")
    def _redact(self):
        # runs on every construction, so a raw password never outlives parsing
        self.value = redact_value(self.value, tag=self.tag, input_type=self.input_type,
                                  name=self.name, autocomplete=self.autocomplete)
        return self


class CursorPosition(CamelModel):
    x: float
    y: float


# ---------- interaction events ----------

class _BaseEvent(CamelModel):
    timestamp: float = Field(..., description="capture time in milliseconds")
    target: Optional[ElementDescriptor] = None

    @property
    def selector(self) -> Optional[str]:
        if self.target is None or not self.target.selector:
            return None
        return self.target.selector


class ClickEvent(_BaseEvent):
    kind: Literal["click"] = "click"
    x: Optional[float] = None
    y: Optional[float] = None


class MouseMoveEvent(_BaseEvent):
    kind: Literal["mouseMove"] = "mouseMove"
    x: Optional[float] = None
    y: Optional[float] = None


class ScrollEvent(_BaseEvent):
    kind: Literal["scroll"] = "scroll"
    position: Optional[float] = None
    percentage: Optional[float] = None
    direction: Optional[Literal["up", "down"]] = None
    distance: Optional[float] = None


class FormFocusEvent(_BaseEvent):
    kind: Literal["formFocus"] = "formFocus"


class FormBlurEvent(_BaseEvent):
    kind: Literal["formBlur"] = "formBlur"
    valid: Optional[bool] = None
    validation_message: Optional[str] = None


class FormInputEvent(_BaseEvent):
    kind: Literal["formInput"] = "formInput"
    # DOM InputEvent.inputType, e.g. "deleteContentBackward"; not every browser sends it
    input_type: Optional[str] = None


class FormSubmitEvent(_BaseEvent):
    kind: Literal["formSubmit"] = "formSubmit"
    invalid_fields: List[ElementDescriptor] = Field(default_factory=list)


class ValidationErrorEvent(_BaseEvent):
    kind: Literal["validationError"] = "validationError"
    message: Optional[str] = None


class JsErrorEvent(_BaseEvent):
    kind: Literal["jsError"] = "jsError"
    message: Optional[str] = None
    source: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None


class PageLoadEvent(_BaseEvent):
    kind: Literal["pageLoad"] = "pageLoad"
    url: Optional[str] = None
    title: Optional[str] = None
    load_time: Optional[float] = None
    referrer: Optional[str] = None


InteractionEvent = Annotated[
    Union[
        ClickEvent,
        MouseMoveEvent,
        ScrollEvent,
        FormFocusEvent,
        FormBlurEvent,
        FormInputEvent,
        FormSubmitEvent,
        ValidationErrorEvent,
        JsErrorEvent,
        PageLoadEvent,
    ],
    Field(discriminator="kind"),
]

EVENT_KINDS = (
    "click", "mouseMove", "scroll", "formFocus", "formBlur",
    "formInput", "formSubmit", "validationError", "jsError", "pageLoad",
)

EVENT_TYPES = (
    ClickEvent,
    MouseMoveEvent,
    ScrollEvent,
    FormFocusEvent,
    FormBlurEvent,
    FormInputEvent,
    FormSubmitEvent,
    ValidationErrorEvent,
    JsErrorEvent,
    PageLoadEvent,
)

_event_adapter = TypeAdapter(InteractionEvent)


def _target_only(err: ValidationError) -> bool:
    # locations look like ("click", "target", ...)
    return all(len(e["loc"]) > 1 and e["loc"][1] == "target" for e in err.errors())


def parse_event(raw: Mapping[str, Any]):
    """Validate one raw event mapping into its InteractionEvent model."""
    if not isinstance(raw, Mapping):
        raise MalformedEventIgnored(f"expected a mapping, got {type(raw).__name__}", raw)
    kind = raw.get("kind")
    if kind not in EVENT_KINDS:
        raise MalformedEventIgnored(f"unrecognized kind {kind!r}", raw)
    try:
        return _event_adapter.validate_python(dict(raw))
    except ValidationError as e:
        if not _target_only(e):
            raise MalformedEventIgnored(f"invalid {kind} event: {e.error_count()} error(s)", raw) from e
    # keep the event, drop the unusable target; selector rules skip it
    try:
        return _event_adapter.validate_python(dict(raw, target=None))
    except ValidationError as e:
        raise MalformedEventIgnored(f"invalid {kind} event: {e.error_count()} error(s)", raw) from e


# ---------- classifier output ----------

FrictionKind = Literal[
    "repeatedClicks",
    "repeatedDeletions",
    "longFormInteraction",
    "formValidationError",
    "formSubmitWithErrors",
    "hesitation",
    "javascriptError",
]


class FrictionSignal(CamelModel):
    kind: FrictionKind
    timestamp: float
    message: str
    target: Optional[ElementDescriptor] = None
    metric: Optional[float] = Field(None, description="count or duration (ms), depending on kind")
    invalid_fields: List[ElementDescriptor] = Field(default_factory=list)
    position: Optional[CursorPosition] = None
    source: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
