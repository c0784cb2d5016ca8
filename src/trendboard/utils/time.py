from __future__ import annotations

import time
from datetime import datetime
from zoneinfo import ZoneInfo

# --- clock helpers ---

def utc_now_s() -> float:
    """Unix epoch seconds (float)."""
    return time.time()

def epoch_ms(ts: float) -> int:
    """Epoch seconds -> integer epoch milliseconds."""
    return int(ts * 1000)

def local_date_key(ts: float, tz_name: str = "America/New_York") -> str:
    """Calendar day (YYYY-MM-DD) of `ts` in the given trading timezone."""
    return datetime.fromtimestamp(float(ts), ZoneInfo(tz_name)).strftime("%Y-%m-%d")

def fmt_local(ts: float, tz_name: str = "America/New_York") -> str:
    # e.g. 2:31:05 PM EDT
    return datetime.fromtimestamp(float(ts), ZoneInfo(tz_name)).strftime("%I:%M:%S %p %Z").lstrip("0")

class Clock:
    """
    Injectable wall clock. Components take one so tests can drive time.
    """
    def now(self) -> float:
        return utc_now_s()
