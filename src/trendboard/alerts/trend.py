from __future__ import annotations

from typing import Any, Mapping, Optional

from trendboard.alerts.rules import TrendLabel, TrendThresholds
from trendboard.ingest.parser import to_float

_DEFAULT = TrendThresholds()

def slow_value(record: Mapping[str, Any]) -> Optional[float]:
    """Slow oscillator (octo D7) of a record, or None when the record carries none."""
    for key in ("octoStochD7", "d7"):
        if record.get(key) is not None:
            return to_float(record.get(key), None)
    return None

def classify_trend(record: Mapping[str, Any], th: TrendThresholds = _DEFAULT) -> str:
    """
    Trend label of a merged record; first matching rule wins.

    fast = D1, mid = D3, slow = D7. A pipeline-reported `calculatedTrend`
    other than Neutral takes precedence. Unparseable slow values count as 0
    and missing directions as "flat".
    """
    reported = record.get("calculatedTrend")
    if reported and reported != TrendLabel.NEUTRAL.value:
        return str(reported)

    fast_dir = record.get("d1Direction") or "flat"
    mid_dir = record.get("d3Direction") or "flat"
    slow_dir = record.get("d7Direction") or "flat"
    slow = to_float(record.get("octoStochD7"), 0.0)
    cross = record.get("d1CrossD7")
    fast_to_down = bool(record.get("d1SwitchedToDown"))
    fast_to_up = bool(record.get("d1SwitchedToUp"))

    if slow > th.dead_long and slow_dir == "up" and mid_dir == "up":
        return TrendLabel.DEAD_LONG.value
    if slow < th.dead_short and slow_dir == "down" and mid_dir == "down":
        return TrendLabel.DEAD_SHORT.value
    if cross == "bull":
        return TrendLabel.BULL_CROSS.value
    if cross == "bear":
        return TrendLabel.BEAR_CROSS.value
    if slow > th.heavy and mid_dir == "up":
        return TrendLabel.HEAVY_BUY.value
    if slow > th.heavy and fast_to_down:
        return TrendLabel.SWITCH_SHORT.value
    if slow < th.oversold and (fast_to_down or fast_dir == "down"):
        return TrendLabel.VERY_SHORT.value
    if slow < th.oversold and fast_to_up:
        return TrendLabel.SWITCH_LONG.value
    if slow > th.try_level and fast_dir == "up":
        return TrendLabel.TRY_LONG.value
    if slow < th.try_level and fast_dir == "down":
        return TrendLabel.TRY_SHORT.value
    return TrendLabel.NEUTRAL.value
