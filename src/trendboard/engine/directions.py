from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Optional

from trendboard.ingest.parser import to_float
from trendboard.utils.types import ChangeDirection, CrossKind, Payload

# D4 signal names ranked bearish (-3) -> bullish (+3)
SIGNAL_RANK: dict[str, int] = {
    "D4_Downtrend": -3,
    "D4_Cross_Down_80": -2,
    "D4_Cross_Down_50": -1,
    "D4_Cross_Down_20": 0,
    "D4_Cross_Up_20": 1,
    "D4_Cross_Up_50": 2,
    "D4_Cross_Up_80": 3,
    "D4_Uptrend": 3,
}

QUAD_SERIES = ("d1", "d2", "d3", "d4")
OCTO_SERIES = ("d1", "d2", "d3", "d4", "d5", "d6", "d7", "d8")

def crossed_below(prev: Any, cur: Any, level: float) -> bool:
    """Two-sample crossing: previous strictly above `level`, current at or below."""
    p, c = to_float(prev, None), to_float(cur, None)
    return p is not None and c is not None and p > level and c <= level

def crossed_above(prev: Any, cur: Any, level: float) -> bool:
    p, c = to_float(prev, None), to_float(cur, None)
    return p is not None and c is not None and p < level and c >= level

def switched(prev_dir: Any, cur_dir: Any) -> bool:
    """A switch needs a defined previous direction that differs from the current one."""
    return bool(prev_dir) and prev_dir != cur_dir

def _trend_of(delta: int) -> ChangeDirection:
    if delta > 0:
        return "bullish"
    if delta < 0:
        return "bearish"
    return "neutral"

@dataclass(slots=True)
class SeriesSnapshot:
    values: dict[str, Any] = field(default_factory=dict)
    directions: dict[str, Any] = field(default_factory=dict)
    signal: Optional[str] = None

class DirectionTracker:
    """
    Per-symbol previous values / directions for the multi-series families
    (quad-stoch D4 and octo-stoch), kept separately per family.

    `quad_d4()` / `octo()` diff the update against the stored snapshot and
    then replace it, so callers must invoke them once per update, in arrival
    order.
    """
    def __init__(self):
        self._quad: dict[str, SeriesSnapshot] = {}
        self._octo: dict[str, SeriesSnapshot] = {}

    def quad_d4(self, symbol: str, p: Payload) -> dict[str, Any]:
        prev = self._quad.get(symbol) or SeriesSnapshot()
        pv, pd = prev.values, prev.directions
        cur_dirs = {s: p.get(f"{s}Direction") for s in QUAD_SERIES}

        d2_sw = switched(pd.get("d2"), cur_dirs["d2"])
        d3_sw = switched(pd.get("d3"), cur_dirs["d3"])

        cur_rank = SIGNAL_RANK.get(p.get("d4Signal"), 0)
        prev_rank = SIGNAL_RANK.get(prev.signal, 0) if prev.signal else 0
        prev_up = sum(1 for s in QUAD_SERIES if pd.get(s) == "up")
        cur_up = sum(1 for d in cur_dirs.values() if d == "up")

        flags = {
            "d4Changed": pv.get("d4") != p.get("d4"),
            "directionChanged": any(pd.get(s) != cur_dirs[s] for s in QUAD_SERIES),
            "changeDirection": _trend_of(cur_rank - prev_rank),
            "arrowChangeDirection": _trend_of(cur_up - prev_up),
            "d2SwitchedToDown": d2_sw and cur_dirs["d2"] == "down",
            "d3SwitchedToUp": d3_sw and cur_dirs["d3"] == "up",
            "d3SwitchedToDown": d3_sw and cur_dirs["d3"] == "down",
            "d1CrossedUnder75": crossed_below(pv.get("d1"), p.get("d1"), 75),
            "d2CrossedUnder75": crossed_below(pv.get("d2"), p.get("d2"), 75),
            "d1CrossedAbove50": crossed_above(pv.get("d1"), p.get("d1"), 50),
            "d2CrossedAbove50": crossed_above(pv.get("d2"), p.get("d2"), 50),
            "d4CrossedAbove25": crossed_above(pv.get("d4"), p.get("d4"), 25),
        }
        self._quad[symbol] = SeriesSnapshot(
            values={s: p.get(s) for s in QUAD_SERIES},
            directions=cur_dirs,
            signal=p.get("d4Signal"),
        )
        return flags

    def octo(self, symbol: str, p: Payload) -> dict[str, Any]:
        prev = self._octo.get(symbol) or SeriesSnapshot()
        pv, pd = prev.values, prev.directions
        d1_dir, d7_dir = p.get("d1Direction"), p.get("d7Direction")

        d1_sw = switched(pd.get("d1"), d1_dir)
        d7_sw = switched(pd.get("d7"), d7_dir)

        flags = {
            "d1SwitchedToUp": d1_sw and d1_dir == "up",
            "d1SwitchedToDown": d1_sw and d1_dir == "down",
            "d7SwitchedToUp": d7_sw and d7_dir == "up",
            "d7SwitchedToDown": d7_sw and d7_dir == "down",
            "d1CrossD7": _fast_slow_cross(pv.get("d1"), pv.get("d7"), p.get("d1"), p.get("d7"),
                                          d1_dir, d7_dir),
        }
        self._octo[symbol] = SeriesSnapshot(
            values={s: p.get(s) for s in OCTO_SERIES},
            directions={s: p.get(f"{s}Direction") for s in OCTO_SERIES},
        )
        return flags

    def clear(self) -> None:
        self._quad.clear()
        self._octo.clear()

    def snapshot(self) -> dict[str, Any]:
        def dump(m: dict[str, SeriesSnapshot]) -> dict:
            return {
                sym: {"values": copy.deepcopy(s.values), "directions": dict(s.directions), "signal": s.signal}
                for sym, s in m.items()
            }
        return {"quad_d4": dump(self._quad), "octo": dump(self._octo)}

    def restore(self, data: dict[str, Any]) -> None:
        def load(raw: dict) -> dict[str, SeriesSnapshot]:
            return {
                sym: SeriesSnapshot(
                    values=dict(s.get("values") or {}),
                    directions=dict(s.get("directions") or {}),
                    signal=s.get("signal"),
                )
                for sym, s in (raw or {}).items() if isinstance(s, dict)
            }
        data = data or {}
        self._quad = load(data.get("quad_d4"))
        self._octo = load(data.get("octo"))

def _fast_slow_cross(prev_fast: Any, prev_slow: Any, fast: Any, slow: Any,
                     fast_dir: Any, slow_dir: Any) -> Optional[CrossKind]:
    """
    'bull' when fast crosses above slow with both rising, 'bear' when it crosses
    below with both falling; None otherwise or when any sample is unparseable.
    """
    pf, ps = to_float(prev_fast, None), to_float(prev_slow, None)
    f, s = to_float(fast, None), to_float(slow, None)
    if pf is None or ps is None or f is None or s is None:
        return None
    if pf <= ps and f > s and fast_dir == "up" and slow_dir == "up":
        return "bull"
    if pf >= ps and f < s and fast_dir == "down" and slow_dir == "down":
        return "bear"
    return None
