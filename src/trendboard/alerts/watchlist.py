from __future__ import annotations

from typing import Mapping

class Watchlist:
    """Starred symbols, synced wholesale from the dashboard."""
    def __init__(self, starred: Mapping[str, bool] | None = None):
        self._starred: dict[str, bool] = {}
        if starred:
            self.replace(starred)

    def is_starred(self, symbol: str) -> bool:
        return self._starred.get(symbol, False)

    def replace(self, mapping: Mapping[str, bool]) -> None:
        self._starred = {str(sym): True for sym, on in mapping.items() if on}

    def starred(self) -> list[str]:
        return sorted(self._starred)

    def snapshot(self) -> dict[str, bool]:
        return dict(self._starred)

    def restore(self, data: Mapping[str, bool] | None) -> None:
        self.replace(data or {})
