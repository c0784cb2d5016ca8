from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from trendboard.ingest.parser import is_true, pattern_value, to_float
from trendboard.utils.time import epoch_ms
from trendboard.utils.types import Payload

HIGHER_LOW = "Higher Low"
LOWER_HIGH = "Lower High"

# (series key in the octo payload, source label), preferred first
_SERIES = (("d3", "D3"), ("d7", "D7"))

@dataclass(slots=True)
class PatternState:
    type: str
    source: str
    last_value: Any
    start_time: float
    last_updated: float
    count: int = 1
    trend_break: bool = False

@dataclass(slots=True)
class _Pivots:
    window: deque = field(default_factory=lambda: deque(maxlen=3))
    last_low: Optional[float] = None
    last_high: Optional[float] = None

@dataclass(slots=True)
class Detection:
    type: str
    value: Any
    source: str

def _pivot_pattern(piv: _Pivots, sample: Optional[float]) -> Optional[Detection]:
    """
    Feed one sample into a 3-point fractal window. A confirmed pivot low above
    the previous pivot low is a Higher Low; a pivot high below the previous
    pivot high is a Lower High.
    """
    if sample is None:
        return None
    piv.window.append(sample)
    if len(piv.window) < 3:
        return None
    a, b, c = piv.window
    found: Optional[tuple[str, float]] = None
    if b < a and b < c:
        if piv.last_low is not None and b > piv.last_low:
            found = (HIGHER_LOW, b)
        piv.last_low = b
    elif b > a and b > c:
        if piv.last_high is not None and b < piv.last_high:
            found = (LOWER_HIGH, b)
        piv.last_high = b
    if found is None:
        return None
    return Detection(type=found[0], value=found[1], source="")

class PatternTracker:
    """
    Per-symbol Higher-Low / Lower-High continuation state from octo-stoch updates.

    A producer-reported pattern (d3Pattern, then d7Pattern) wins; otherwise
    the D3 and then D7 series are scanned for pivots. The trend-break flag is
    sticky until the next detection of either type.
    """
    def __init__(self):
        self._states: dict[str, PatternState] = {}
        self._pivots: dict[tuple[str, str], _Pivots] = {}

    def get(self, symbol: str) -> Optional[PatternState]:
        return self._states.get(symbol)

    def _detect(self, symbol: str, p: Payload) -> Optional[Detection]:
        # every series is fed each round so pivot history stays continuous
        pivot_hits: list[Detection] = []
        for key, source in _SERIES:
            piv = self._pivots.setdefault((symbol, key), _Pivots())
            hit = _pivot_pattern(piv, to_float(p.get(key), None))
            if hit is not None:
                hit.source = source
                pivot_hits.append(hit)

        for key, source in _SERIES:
            label = p.get(f"{key}Pattern")
            if label and label != "None":
                return Detection(type=label, value=pattern_value(p.get(f"{key}PatternValue")), source=source)
        return pivot_hits[0] if pivot_hits else None

    def update(self, symbol: str, p: Payload, now: float) -> Optional[PatternState]:
        detected = self._detect(symbol, p)
        existing = self._states.get(symbol)

        if detected is not None:
            same = existing is not None and existing.type == detected.type
            st = PatternState(
                type=detected.type,
                source=detected.source,
                last_value=detected.value,
                start_time=existing.start_time if same else now,
                last_updated=now,
                count=existing.count + 1 if same else 1,
                trend_break=False,
            )
            self._states[symbol] = st
            return st

        if existing is None:
            return None

        existing.last_updated = now
        existing.count += 1
        d3 = to_float(p.get("d3"), None)
        anchor = to_float(existing.last_value, None)
        if d3 is not None and anchor is not None:
            if existing.type == HIGHER_LOW and d3 < anchor:
                existing.trend_break = True
            elif existing.type == LOWER_HIGH and d3 > anchor:
                existing.trend_break = True
        return existing

    def fields_for(self, symbol: str, p: Optional[Payload] = None) -> dict[str, Any]:
        """Record fields describing the symbol's current pattern."""
        st = self._states.get(symbol)
        reported_break = is_true((p or {}).get("d3TrendBreak"))
        if st is None:
            return {
                "patternType": None,
                "patternValue": None,
                "patternStartTime": None,
                "patternCount": 0,
                "patternTrendBreak": reported_break,
            }
        return {
            "patternType": st.type,
            "patternValue": st.last_value,
            "patternStartTime": epoch_ms(st.start_time),
            "patternCount": st.count,
            "patternTrendBreak": st.trend_break or reported_break,
        }

    def clear(self) -> None:
        self._states.clear()
        self._pivots.clear()

    def snapshot(self) -> dict[str, Any]:
        return {
            "states": {sym: asdict(st) for sym, st in self._states.items()},
            "pivots": {
                f"{sym}|{key}": {"window": list(pv.window), "last_low": pv.last_low, "last_high": pv.last_high}
                for (sym, key), pv in self._pivots.items()
            },
        }

    def restore(self, data: dict[str, Any]) -> None:
        self.clear()
        data = data or {}
        for sym, raw in (data.get("states") or {}).items():
            try:
                self._states[sym] = PatternState(**raw)
            except TypeError:
                continue
        for k, raw in (data.get("pivots") or {}).items():
            sym, _, key = k.rpartition("|")
            pv = _Pivots(last_low=raw.get("last_low"), last_high=raw.get("last_high"))
            pv.window.extend(raw.get("window") or [])
            self._pivots[(sym, key)] = pv
