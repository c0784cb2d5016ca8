from __future__ import annotations

import copy
import enum
from dataclasses import dataclass
from typing import Any, Optional

class Family(str, enum.Enum):
    VWAP = "vwap"
    QUAD_D1D2 = "quad_stoch"
    QUAD_D4 = "quad_stoch_d4"
    OCTO = "octo_stoch"
    MACD = "macd"
    CCI = "cci"
    ORB = "orb"
    SOLO = "solo_stoch"
    DUAL = "dual_stoch"
    DAY_CHANGE = "day_change"

# validity window per family (seconds)
FAMILY_WINDOWS_S: dict[Family, int] = {
    Family.VWAP: 5 * 60,
    Family.QUAD_D1D2: 10 * 60,
    Family.QUAD_D4: 60 * 60,
    Family.OCTO: 60 * 60,
    Family.MACD: 15 * 60,
    Family.CCI: 60 * 60,
    Family.ORB: 240 * 60,
    Family.SOLO: 60 * 60,
    Family.DUAL: 60 * 60,
    Family.DAY_CHANGE: 24 * 60 * 60,
}

def orb_key(symbol: str, orb_type: str) -> str:
    # e.g. AAPL_london / AAPL_ny
    return f"{symbol}_{orb_type}"

@dataclass(slots=True)
class SideEntry:
    payload: dict[str, Any]
    timestamp: float  # epoch seconds of the put

class SideChannelCache:
    """
    Per-family key -> (payload, timestamp) store with lazy expiry.

    Nothing expires in the background: `get_if_valid` decides at read time
    and evicts what it finds stale. `peek` ignores the window and is only
    for previous-value diffs.
    """
    def __init__(self, family: Family, window_s: float):
        self.family = family
        self.window_s = float(window_s)
        self._store: dict[str, SideEntry] = {}

    def put(self, key: str, payload: dict[str, Any], now: float) -> None:
        self._store[key] = SideEntry(payload=dict(payload), timestamp=float(now))

    def get_if_valid(self, key: str, now: float) -> Optional[dict[str, Any]]:
        entry = self._store.get(key)
        if entry is None:
            return None
        if now - entry.timestamp > self.window_s:
            # expired; cleanup
            self._store.pop(key, None)
            return None
        return entry.payload

    def peek(self, key: str) -> Optional[dict[str, Any]]:
        entry = self._store.get(key)
        return entry.payload if entry is not None else None

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)

    def clear(self) -> None:
        self._store.clear()

    def snapshot(self) -> dict[str, dict]:
        return {
            k: {"payload": copy.deepcopy(e.payload), "timestamp": e.timestamp}
            for k, e in self._store.items()
        }

    def restore(self, data: dict[str, dict], now: float) -> int:
        """Load a snapshot, dropping entries that expired while persisted. Returns kept count."""
        self._store.clear()
        for k, raw in (data or {}).items():
            try:
                ts = float(raw["timestamp"])
                payload = dict(raw["payload"])
            except (KeyError, TypeError, ValueError):
                continue
            if now - ts > self.window_s:
                continue
            self._store[k] = SideEntry(payload=payload, timestamp=ts)
        return len(self._store)

class SideChannelRepository:
    """Owns one SideChannelCache per indicator family."""
    def __init__(self, windows_s: Optional[dict[Family, int]] = None):
        windows = dict(FAMILY_WINDOWS_S)
        if windows_s:
            windows.update(windows_s)
        self._caches: dict[Family, SideChannelCache] = {
            fam: SideChannelCache(fam, windows[fam]) for fam in Family
        }

    def __getitem__(self, family: Family) -> SideChannelCache:
        return self._caches[family]

    def clear(self) -> None:
        for c in self._caches.values():
            c.clear()

    def sizes(self) -> dict[str, int]:
        return {fam.value: len(c) for fam, c in self._caches.items()}

    def snapshot(self) -> dict[str, dict]:
        return {fam.value: c.snapshot() for fam, c in self._caches.items()}

    def restore(self, data: dict[str, dict], now: float) -> None:
        for fam, c in self._caches.items():
            c.restore((data or {}).get(fam.value, {}), now)
