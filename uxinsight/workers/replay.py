"""Server-side replay: run drained sessions through the classifier offline.

Hesitation is time-driven in a live session; here the 5 s idle checks are
simulated on a fixed grid between a session's first and last event.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from ..config import get_settings
from ..events import FrictionSignal
from ..friction.classifier import InteractionClassifier

SIGNAL_COLUMNS = ["session_id", "kind", "ts", "selector", "metric", "message", "signal"]


def load_events(raw_dir: Path) -> pd.DataFrame:
    files = sorted(raw_dir.glob("events_*.parquet"))
    if not files:
        raise FileNotFoundError(f"No raw event parquet files in {raw_dir}")
    df = pd.concat([pd.read_parquet(f) for f in files], ignore_index=True)
    df["ts"] = pd.to_numeric(df["ts"], errors="coerce")
    df = df.dropna(subset=["ts"])
    return df.sort_values(["session_id", "ts"], kind="mergesort").reset_index(drop=True)


def tick_schedule(start: float, end: float, interval_ms: float) -> np.ndarray:
    # first check fires one interval after the session starts
    return np.arange(start + interval_ms, end + 1e-6, interval_ms)


def replay_session(events: List[Dict[str, Any]], classifier: Optional[InteractionClassifier] = None) -> List[FrictionSignal]:
    classifier = classifier or InteractionClassifier()
    events = sorted(events, key=lambda e: e["timestamp"])
    if not events:
        return []

    start, end = float(events[0]["timestamp"]), float(events[-1]["timestamp"])
    ticks = tick_schedule(start, end, classifier.config.hesitation_interval_ms)
    state = classifier.new_state(start)

    out: List[FrictionSignal] = []
    i = 0
    for ev in events:
        ts = float(ev["timestamp"])
        while i < len(ticks) and ticks[i] < ts:
            out += classifier.check_idle(state, float(ticks[i]))
            i += 1
        out += classifier.observe(state, ev)
    return out


def replay_frame(df: pd.DataFrame, classifier: Optional[InteractionClassifier] = None) -> pd.DataFrame:
    classifier = classifier or InteractionClassifier()
    rows = []
    for session_id, g in df.groupby("session_id", sort=False):
        events = [json.loads(p) for p in g["payload"]]
        for s in replay_session(events, classifier):
            rows.append({
                "session_id": session_id,
                "kind": s.kind,
                "ts": s.timestamp,
                "selector": s.target.selector if s.target is not None else None,
                "metric": s.metric,
                "message": s.message,
                "signal": json.dumps(s.to_json_dict()),
            })
    return pd.DataFrame(rows, columns=SIGNAL_COLUMNS)


def summarize(signals: pd.DataFrame) -> pd.DataFrame:
    """Signal counts per session and kind, plus a total column."""
    if signals.empty:
        return pd.DataFrame(columns=["session_id", "total"])
    counts = pd.crosstab(signals["session_id"], signals["kind"])
    counts["total"] = counts.sum(axis=1)
    return counts.reset_index().rename_axis(columns=None)


def main():
    settings = get_settings()
    df = load_events(settings.data_dir / "parquet")
    classifier = InteractionClassifier(settings.classifier)
    signals = replay_frame(df, classifier)

    outdir = settings.data_dir / "friction"
    outdir.mkdir(parents=True, exist_ok=True)
    signals.to_parquet(outdir / "friction_signals.parquet", index=False)
    summary = summarize(signals)
    summary.to_csv(outdir / "friction_summary.csv", index=False)
    print(f"[replay] {df['session_id'].nunique()} sessions, {len(signals)} signals → {outdir}")
    if not summary.empty:
        print(summary.to_string(index=False))


if __name__ == "__main__":
    main()
