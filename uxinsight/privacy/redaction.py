from __future__ import annotations
from typing import Any, Optional

REDACTED = "[REDACTED]"

# autocomplete tokens for payment card fields start with "cc-"
# (cc-number, cc-csc, cc-exp, cc-name, ...)
CARD_AUTOCOMPLETE_PREFIX = "cc-"


def is_sensitive(tag: Optional[str], input_type: Optional[str], name: Optional[str],
                 autocomplete: Optional[str]) -> bool:
    tag = (tag or "").lower()
    input_type = (input_type or "").lower()
    name = (name or "").lower()
    autocomplete = (autocomplete or "").strip().lower()

    if tag == "input" and (input_type == "password" or "password" in name):
        return True
    # autocomplete may hold a section prefix, e.g. "section-billing cc-number"
    return any(tok.startswith(CARD_AUTOCOMPLETE_PREFIX) for tok in autocomplete.split())


def redact_value(value: Any, *, tag=None, input_type=None, name=None, autocomplete=None) -> Any:
    if value is None:
        return None
    if is_sensitive(tag, input_type, name, autocomplete):
        return REDACTED
    return value
