from __future__ import annotations

import time
from datetime import datetime, timezone


def utc_ts() -> float:
    return time.time()


def format_ts(ts: float, fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
    """Render an epoch timestamp in UTC."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime(fmt)


def format_age(seconds: float) -> str:
    seconds = max(0, int(seconds))
    minutes, secs = divmod(seconds, 60)
    if minutes == 0:
        return f"{secs}s ago"
    return f"{minutes}m {secs}s ago"
