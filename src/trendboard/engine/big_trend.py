from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Optional

from trendboard.ingest.parser import to_float
from trendboard.utils.time import epoch_ms, local_date_key

HISTORY_POINTS = 50

@dataclass(slots=True)
class BigTrendDay:
    isBigTrendDay: bool
    timestamp: int      # epoch ms of the triggering update
    d1Value: float
    d2Value: float

class BigTrendDayTracker:
    """
    Dual-stoch bookkeeping: the once-per-day big-trend flag and a short
    (d1, d2) history per symbol for the dashboard mini chart.

    The day key is the calendar date in `tz_name` at ingest time; a flag set
    for (symbol, day) is never unset or re-evaluated that day.
    """
    def __init__(self, tz_name: str = "America/New_York", low: float = 10.0, high: float = 90.0):
        self.tz_name = tz_name
        self.low = low
        self.high = high
        self._days: dict[str, dict[str, BigTrendDay]] = {}
        self._history: dict[str, deque] = {}

    def observe(self, symbol: str, d1: Any, d2: Any, now: float) -> Optional[BigTrendDay]:
        """Record a dual-stoch sample. Returns the flag only when it was newly set."""
        v1 = to_float(d1, 0.0)
        v2 = to_float(d2, 0.0)
        hist = self._history.setdefault(symbol, deque(maxlen=HISTORY_POINTS))
        hist.append({"d1": v1, "d2": v2, "timestamp": epoch_ms(now)})

        if not (v1 < self.low or v1 > self.high or v2 < self.low or v2 > self.high):
            return None
        day = local_date_key(now, self.tz_name)
        per_symbol = self._days.setdefault(symbol, {})
        if day in per_symbol:
            return None
        flag = BigTrendDay(isBigTrendDay=True, timestamp=epoch_ms(now), d1Value=v1, d2Value=v2)
        per_symbol[day] = flag
        return flag

    def is_big_trend_day(self, symbol: str, now: float) -> bool:
        day = local_date_key(now, self.tz_name)
        flag = self._days.get(symbol, {}).get(day)
        return bool(flag and flag.isBigTrendDay)

    def history(self, symbol: str) -> list[dict[str, Any]]:
        return [dict(pt) for pt in self._history.get(symbol, ())]

    def clear(self) -> None:
        self._days.clear()
        self._history.clear()

    def snapshot(self) -> dict[str, Any]:
        return {
            "days": {sym: {d: asdict(f) for d, f in days.items()} for sym, days in self._days.items()},
            "history": {sym: [dict(pt) for pt in h] for sym, h in self._history.items()},
        }

    def restore(self, data: dict[str, Any]) -> None:
        self.clear()
        data = data or {}
        for sym, days in (data.get("days") or {}).items():
            for d, raw in (days or {}).items():
                try:
                    self._days.setdefault(sym, {})[d] = BigTrendDay(**raw)
                except TypeError:
                    continue
        for sym, pts in (data.get("history") or {}).items():
            self._history[sym] = deque((dict(pt) for pt in pts or []), maxlen=HISTORY_POINTS)
