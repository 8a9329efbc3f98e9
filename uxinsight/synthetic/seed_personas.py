import json, urllib.request
from typing import Dict, List

from .personas import PERSONAS

BASE = "http://127.0.0.1:8123"
CH = 200


def _post(path: str, body) -> Dict:
    data = json.dumps(body).encode("utf-8")
    req = urllib.request.Request(BASE + path, data=data, headers={"Content-Type": "application/json"})
    with urllib.request.urlopen(req) as r:
        return json.loads(r.read() or b"{}")


def seed_session(name: str, events: List[Dict]) -> Dict:
    sess = _post("/api/sessions", {"user": f"persona:{name}", "url": events[0].get("url"),
                                   "browser": "Chrome", "device": "Desktop"})
    sid = sess["id"]
    n_signals = 0
    # send in chunks to save round-trips
    for i in range(0, len(events), CH):
        batch = [dict(ev, sessionId=sid) for ev in events[i:i + CH]]
        n_signals += len(_post("/api/events", batch).get("signals", []))
    _post(f"/api/sessions/{sid}/end", {})
    return {"session": sid, "events": len(events), "signals": n_signals}


def main():
    total = 0
    for name, make in PERSONAS.items():
        res = seed_session(name, make())
        total += res["events"]
        print(f"[seed] {name}: {res['events']} events, {res['signals']} signals → {res['session']}")
    print(f"Seeded {total} events across {len(PERSONAS)} personas.")


if __name__ == "__main__":
    main()
