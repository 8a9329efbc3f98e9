from __future__ import annotations
import time, random
from typing import Dict, List, Optional

# canonical InteractionEvent dicts (camelCase, ms timestamps), one session each


def _now_ms(): return time.time() * 1000.0


def _el(selector, tag="div", **kw) -> Dict:
    d = {"selector": selector, "tag": tag, "visible": True}
    d.update(kw)
    return d


def _page(ts, url) -> Dict:
    return {"kind": "pageLoad", "timestamp": ts, "url": url, "title": url.rsplit("/", 1)[-1] or "home",
            "loadTime": 850.0}


def reader(minutes=3, step_ms=1000.0, t0: Optional[float] = None, rng=None) -> List[Dict]:
    """Steady scroll, low jitter, few clicks. Never idle long enough to hesitate."""
    rng = rng or random.Random()
    t0 = _now_ms() if t0 is None else t0
    ev = [_page(t0, "https://example.com/blog/post")]
    y = 0
    for i in range(1, int(minutes * 60_000 / step_ms)):
        ts = t0 + i * step_ms
        dy = rng.randint(40, 80)
        y = (y + dy) % 8000
        ev += [
            {"kind": "scroll", "timestamp": ts, "position": y, "direction": "down", "distance": dy},
            {"kind": "mouseMove", "timestamp": ts + 20, "x": 600 + rng.randint(-30, 30),
             "y": 400 + rng.randint(-30, 30)},
        ]
        if i % 45 == 10:
            ev.append({"kind": "click", "timestamp": ts + 50, "x": 600, "y": 400,
                       "target": _el("a#next", tag="a", id="next")})
    return ev


def rager(bursts=4, step_ms=2000.0, t0: Optional[float] = None, rng=None) -> List[Dict]:
    """Rage-click clusters on an element that does nothing."""
    rng = rng or random.Random()
    t0 = _now_ms() if t0 is None else t0
    ev = [_page(t0, "https://example.com/cart")]
    dead = _el("#dead", id="dead", text="Apply coupon")
    for b in range(bursts):
        ts = t0 + (b + 1) * step_ms
        ev.append({"kind": "mouseMove", "timestamp": ts, "x": 300 + rng.randint(-80, 80),
                   "y": 600 + rng.randint(-80, 80), "target": dead})
        # 3 fast clicks (rage)
        for j in range(3):
            ev.append({"kind": "click", "timestamp": ts + 100 + 120 * j, "x": 300, "y": 600, "target": dead})
        ev.append({"kind": "click", "timestamp": ts + 900, "x": 40, "y": 40,
                   "target": _el("a.logo", tag="a", classes=["logo"])})
    return ev


def form_lost(t0: Optional[float] = None, rng=None) -> List[Dict]:
    """Slow, corrected typing in a field that ends invalid, then a failed submit."""
    rng = rng or random.Random()
    t0 = _now_ms() if t0 is None else t0
    email = _el("#email", tag="input", id="email", inputType="email", name="email", value="")
    ev = [_page(t0, "https://example.com/checkout"),
          {"kind": "formFocus", "timestamp": t0 + 500, "target": email}]
    ts = t0 + 500
    typed = ""
    for ch in "jane.doe@exmaple":
        ts += rng.randint(250, 450)
        typed += ch
        ev.append({"kind": "formInput", "timestamp": ts, "inputType": "insertText",
                   "target": dict(email, value=typed)})
    for _ in range(6):
        ts += rng.randint(150, 250)
        typed = typed[:-1]
        ev.append({"kind": "formInput", "timestamp": ts, "inputType": "deleteContentBackward",
                   "target": dict(email, value=typed)})
    ts = max(ts, t0 + 500 + 10_500)
    ev.append({"kind": "formBlur", "timestamp": ts, "valid": False,
               "validationMessage": "Please enter an email address.", "target": dict(email, value=typed)})
    card = _el("#card", tag="input", id="card", name="card", autocomplete="cc-number", value="4111111111111111")
    ev.append({"kind": "formFocus", "timestamp": ts + 400, "target": card})
    ev.append({"kind": "formBlur", "timestamp": ts + 2400, "valid": True, "target": card})
    ev.append({"kind": "formSubmit", "timestamp": ts + 3000,
               "target": _el("form#checkout", tag="form", id="checkout"),
               "invalidFields": [dict(email, value=typed)]})
    return ev


def idler(pauses=2, pause_ms=12_000.0, t0: Optional[float] = None, rng=None) -> List[Dict]:
    """Reads, stops moving for a while, comes back; hesitates over the CTA."""
    rng = rng or random.Random()
    t0 = _now_ms() if t0 is None else t0
    cta = _el("button#cta", tag="button", id="cta", text="Start free trial")
    ev = [_page(t0, "https://example.com/pricing")]
    ts = t0
    for _ in range(pauses):
        ts += 1000
        ev.append({"kind": "mouseMove", "timestamp": ts, "x": 700 + rng.randint(-3, 3),
                   "y": 420 + rng.randint(-3, 3), "target": cta})
        ts += pause_ms
        ev.append({"kind": "scroll", "timestamp": ts, "position": 300, "direction": "down", "distance": 300})
    ev.append({"kind": "click", "timestamp": ts + 500, "x": 700, "y": 420, "target": cta})
    return ev


PERSONAS = {"reader": reader, "rager": rager, "form_lost": form_lost, "idler": idler}
