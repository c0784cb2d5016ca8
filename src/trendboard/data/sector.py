from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Optional

import structlog
import yfinance as yf

from trendboard.notify.broadcast import Broadcaster
from trendboard.utils.backoff import batched
from trendboard.utils.time import Clock, epoch_ms

log = structlog.get_logger("sector")

@dataclass(slots=True)
class SectorConfig:
    enabled: bool = True
    cache_ttl_s: float = 24 * 3600
    refresh_every_s: float = 6 * 3600
    refresh_older_than_s: float = 12 * 3600
    batch_size: int = 10
    batch_pause_s: float = 1.0

@dataclass(slots=True)
class _Cached:
    sector: str
    fetched_at: float

def config_from_env() -> SectorConfig:
    enabled = os.getenv("SECTOR_LOOKUP_ENABLED", "1").lower() in ("1", "true", "yes")
    return SectorConfig(enabled=enabled)

def fetch_sector_blocking(symbol: str) -> Optional[str]:
    """Sector from Yahoo Finance quote info (blocking; run in a worker thread)."""
    info = yf.Ticker(symbol).info or {}
    sector = info.get("sector")
    if not sector and info.get("quoteType") == "ETF":
        sector = "ETF"
    return sector or None

class SectorLookup:
    """
    Cached symbol -> sector reference data.

    `sector_for` never waits on the network: a miss schedules one background
    fetch per symbol and returns None; the result is published as
    `sector_updated` when it lands.
    """
    def __init__(self, cfg: Optional[SectorConfig] = None, broadcaster: Optional[Broadcaster] = None,
                 clock: Optional[Clock] = None):
        self.cfg = cfg or SectorConfig()
        self.broadcaster = broadcaster
        self.clock = clock or Clock()
        self._cache: dict[str, _Cached] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    # --- lookup ---

    def cached(self, symbol: str) -> Optional[str]:
        hit = self._cache.get(symbol)
        if hit is None:
            return None
        if self.clock.now() - hit.fetched_at >= self.cfg.cache_ttl_s:
            return None
        return hit.sector

    def sector_for(self, symbol: str) -> Optional[str]:
        hit = self.cached(symbol)
        if hit is not None:
            return hit
        if self.cfg.enabled:
            self._schedule(symbol)
        return None

    def remember(self, symbol: str, sector: str) -> None:
        """Store a producer-supplied sector."""
        if sector:
            self._cache[symbol] = _Cached(sector=str(sector), fetched_at=self.clock.now())

    def _schedule(self, symbol: str) -> None:
        if symbol in self._inflight:
            return
        try:
            task = asyncio.get_running_loop().create_task(self.fetch(symbol), name=f"sector-{symbol}")
        except RuntimeError:
            # no running loop (sync caller); next update retries
            return
        self._inflight[symbol] = task
        task.add_done_callback(lambda _t, s=symbol: self._inflight.pop(s, None))

    async def fetch(self, symbol: str) -> Optional[str]:
        try:
            sector = await asyncio.to_thread(fetch_sector_blocking, symbol)
        except Exception as e:
            log.warning("sector_fetch_failed", symbol=symbol, err=str(e))
            return None
        if not sector:
            log.info("sector_not_found", symbol=symbol)
            return None
        self.remember(symbol, sector)
        log.info("sector_found", symbol=symbol, sector=sector)
        if self.broadcaster is not None:
            self.broadcaster.publish("sector_updated", {
                "symbol": symbol, "sector": sector, "timestamp": epoch_ms(self.clock.now()),
            })
        return sector

    # --- refresh ---

    def stale_symbols(self, symbols: list[str]) -> list[str]:
        now = self.clock.now()
        out = []
        for sym in symbols:
            hit = self._cache.get(sym)
            if hit is None or now - hit.fetched_at > self.cfg.refresh_older_than_s:
                out.append(sym)
        return out

    async def refresh(self, symbols: list[str]) -> int:
        """Re-fetch in small batches with a pause between them. Returns sectors found."""
        found = 0
        batches = list(batched(sorted(set(symbols)), self.cfg.batch_size))
        for i, batch in enumerate(batches):
            results = await asyncio.gather(*(self.fetch(s) for s in batch))
            found += sum(1 for r in results if r)
            if i < len(batches) - 1:
                await asyncio.sleep(self.cfg.batch_pause_s)
        log.info("sector_refresh_done", requested=len(symbols), found=found)
        return found

    async def start(self, symbols_fn):
        """Periodic refresh of entries older than refresh_older_than_s."""
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(symbols_fn), name="sector-refresh")

    async def stop(self):
        self._stop.set()
        for t in list(self._inflight.values()):
            t.cancel()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _loop(self, symbols_fn):
        try:
            while not self._stop.is_set():
                await asyncio.sleep(self.cfg.refresh_every_s)
                stale = self.stale_symbols(list(symbols_fn()))
                if stale:
                    await self.refresh(stale)
        except asyncio.CancelledError:
            return

    # --- persistence ---

    def snapshot(self) -> dict[str, dict]:
        return {s: {"sector": c.sector, "fetched_at": c.fetched_at} for s, c in self._cache.items()}

    def restore(self, data: dict[str, dict]) -> None:
        self._cache = {}
        for s, raw in (data or {}).items():
            try:
                self._cache[s] = _Cached(sector=str(raw["sector"]), fetched_at=float(raw["fetched_at"]))
            except (KeyError, TypeError, ValueError):
                continue
