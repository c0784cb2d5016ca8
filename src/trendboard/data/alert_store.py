from __future__ import annotations

import copy
from collections import deque
from typing import Any, Iterable, Optional

from trendboard.utils.types import AlertRecord, Payload

HISTORY_CAP = 10_000

class AlertStore:
    """
    Latest-per-symbol view plus bounded newest-first logs.

    - latest:      exactly one record per symbol (last merge / upsert wins)
    - history:     merged Primary records, newest first, capped
    - raw_history: every inbound payload as received, newest first, capped
    Readers always get copies; only the merge engine writes.
    """
    def __init__(self, cap: int = HISTORY_CAP):
        self.cap = cap
        self._latest: dict[str, AlertRecord] = {}
        self._history: deque[AlertRecord] = deque(maxlen=cap)
        self._raw: deque[Payload] = deque(maxlen=cap)

    # --- writes ---

    def append_raw(self, payload: Any, received_at_ms: int) -> None:
        if isinstance(payload, dict):
            item = {**payload, "receivedAt": received_at_ms}
        else:
            item = {"payload": payload, "receivedAt": received_at_ms}
        self._raw.appendleft(item)

    def record_merge(self, record: AlertRecord) -> None:
        """Prepend a merged record to history and make it the symbol's latest."""
        self._history.appendleft(dict(record))
        self._latest[record["symbol"]] = record

    def upsert(self, symbol: str, fields: dict[str, Any], received_at_ms: int,
               create_defaults: Optional[dict[str, Any]] = None) -> AlertRecord:
        """
        Merge `fields` into the symbol's latest record, creating it when absent.
        `create_defaults` only applies to a freshly created record.
        """
        rec = self._latest.get(symbol)
        if rec is None:
            rec = {"symbol": symbol}
            if create_defaults:
                rec.update(create_defaults)
            self._latest[symbol] = rec
        rec.update(fields)
        rec["receivedAt"] = received_at_ms
        return rec

    def clear(self) -> None:
        self._latest.clear()
        self._history.clear()
        self._raw.clear()

    # --- reads ---

    def latest(self, symbol: str) -> Optional[AlertRecord]:
        rec = self._latest.get(symbol)
        return dict(rec) if rec is not None else None

    def latest_per_symbol(self) -> list[AlertRecord]:
        recs = sorted(self._latest.values(), key=lambda r: r.get("receivedAt") or 0, reverse=True)
        return [dict(r) for r in recs]

    def full_history(self, limit: Optional[int] = None) -> list[AlertRecord]:
        return [dict(r) for r in _take(self._history, limit)]

    def raw(self, limit: Optional[int] = None) -> list[Payload]:
        return [dict(r) for r in _take(self._raw, limit)]

    def symbols(self) -> list[str]:
        return list(self._latest.keys())

    def stats(self) -> dict[str, int]:
        return {
            "symbols": len(self._latest),
            "history": len(self._history),
            "raw_history": len(self._raw),
        }

    # --- persistence ---

    def snapshot(self) -> dict[str, Any]:
        return {
            "latest": copy.deepcopy(self._latest),
            "history": copy.deepcopy(list(self._history)),
            "raw_history": copy.deepcopy(list(self._raw)),
        }

    def restore(self, data: dict[str, Any]) -> None:
        self.clear()
        data = data or {}
        for sym, rec in (data.get("latest") or {}).items():
            if isinstance(rec, dict):
                self._latest[sym] = dict(rec)
        # snapshots are newest-first; extend keeps that order
        self._history.extend(dict(r) for r in (data.get("history") or []) if isinstance(r, dict))
        self._raw.extend(dict(r) for r in (data.get("raw_history") or []) if isinstance(r, dict))

def _take(items: Iterable, limit: Optional[int]) -> list:
    out = []
    for i, r in enumerate(items):
        if limit is not None and i >= limit:
            break
        out.append(r)
    return out
