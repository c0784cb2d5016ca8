from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

@dataclass(slots=True)
class TrendState:
    previous_trend: Optional[str] = None
    extreme: Optional[str] = None        # extreme label whose zone the slow oscillator is in
    last_notified_ts: Optional[float] = None

# per-symbol container, created lazily by the edge detector
class TrendStateBook:
    def __init__(self):
        self._states: dict[str, TrendState] = {}

    def ensure(self, symbol: str) -> TrendState:
        st = self._states.get(symbol)
        if st is None:
            st = TrendState()
            self._states[symbol] = st
        return st

    def get(self, symbol: str) -> Optional[TrendState]:
        return self._states.get(symbol)

    def clear(self) -> None:
        self._states.clear()

    def snapshot(self) -> dict[str, dict]:
        return {
            sym: {"previous_trend": st.previous_trend, "extreme": st.extreme,
                  "last_notified_ts": st.last_notified_ts}
            for sym, st in self._states.items()
        }

    def restore(self, data: dict[str, dict]) -> None:
        self._states = {
            sym: TrendState(
                previous_trend=raw.get("previous_trend"),
                extreme=raw.get("extreme"),
                last_notified_ts=raw.get("last_notified_ts"),
            )
            for sym, raw in (data or {}).items() if isinstance(raw, dict)
        }
