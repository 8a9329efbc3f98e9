import json
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

import pandas as pd
import redis

from ..config import get_settings

COLUMNS = ["session_id", "kind", "ts", "payload"]


def to_row(raw: bytes) -> dict:
    msg = json.loads(raw)
    ev = msg["event"]
    return {
        "session_id": msg["sessionId"],
        "kind": ev["kind"],
        "ts": float(ev["timestamp"]),
        # nested descriptors vary per kind; keep the event as one JSON column
        "payload": json.dumps(ev),
    }


def drain(r, queue: str, outdir: Path) -> Tuple[Optional[Path], int]:
    batch: List[dict] = []
    # Pop everything currently in Redis
    while True:
        raw = r.lpop(queue)
        if raw is None:
            break
        try:
            batch.append(to_row(raw))
        except (ValueError, KeyError, TypeError) as e:
            print("[drain] skip bad message:", repr(e))

    if not batch:
        return None, 0

    outdir.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(batch, columns=COLUMNS)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    path = outdir / f"events_{stamp}.parquet"
    df.to_parquet(path, engine="pyarrow", index=False)
    return path, len(df)


def main():
    settings = get_settings()
    if not settings.redis_url:
        print("[drain] no redis_url configured (UXINSIGHT_REDIS_URL); nothing to drain.")
        return
    r = redis.Redis.from_url(settings.redis_url, decode_responses=False)
    path, n = drain(r, settings.events_queue, settings.data_dir / "parquet")
    if path is None:
        print("[drain] queue empty — nothing to write.")
        return
    print(f"[drain] wrote {n} rows → {path}")


if __name__ == "__main__":
    main()
