from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from trendboard.alerts.edge import NotificationEdgeDetector
from trendboard.alerts.rules import TrendThresholds
from trendboard.alerts.trend import classify_trend
from trendboard.alerts.watchlist import Watchlist
from trendboard.data.alert_store import HISTORY_CAP, AlertStore
from trendboard.data.sector import SectorLookup
from trendboard.data.side_channel import Family, SideChannelRepository, orb_key
from trendboard.engine import projections as pj
from trendboard.engine.big_trend import BigTrendDayTracker
from trendboard.engine.directions import DirectionTracker
from trendboard.engine.patterns import PatternTracker
from trendboard.ingest.parser import UpdateKind, classify_update, symbol_of, to_float
from trendboard.notify.broadcast import Broadcaster
from trendboard.utils.time import Clock, epoch_ms
from trendboard.utils.types import AlertRecord, Payload

log = structlog.get_logger("merge")

STATE_VERSION = 1
ORB_SESSIONS = ("london", "ny")

@dataclass(slots=True)
class EngineConfig:
    trend_day_tz: str = "America/New_York"
    history_cap: int = HISTORY_CAP

class MergeEngine:
    """
    Per-symbol stream aggregation.

    `ingest()` classifies an update, then under the symbol's lock either
    stores a side-channel entry and upserts its projection into the latest
    record, or (Primary) builds a fresh merged record from every still-valid
    side entry. Distinct symbols proceed concurrently; updates for one
    symbol apply in arrival order.
    """
    def __init__(
        self,
        cfg: Optional[EngineConfig] = None,
        *,
        side: Optional[SideChannelRepository] = None,
        store: Optional[AlertStore] = None,
        watchlist: Optional[Watchlist] = None,
        edge: Optional[NotificationEdgeDetector] = None,
        sector: Optional[SectorLookup] = None,
        broadcaster: Optional[Broadcaster] = None,
        thresholds: Optional[TrendThresholds] = None,
        clock: Optional[Clock] = None,
    ):
        self.cfg = cfg or EngineConfig()
        self.clock = clock or Clock()
        self.th = thresholds or TrendThresholds()
        self.side = side or SideChannelRepository()
        self.store = store or AlertStore(cap=self.cfg.history_cap)
        self.watchlist = watchlist or (edge.watchlist if edge is not None else Watchlist())
        self.edge = edge or NotificationEdgeDetector(self.watchlist, thresholds=self.th)
        self.sector = sector
        self.broadcaster = broadcaster
        self.patterns = PatternTracker()
        self.directions = DirectionTracker()
        self.big_trend = BigTrendDayTracker(tz_name=self.cfg.trend_day_tz)
        self._prev_price: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, symbol: str) -> asyncio.Lock:
        lock = self._locks.get(symbol)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[symbol] = lock
        return lock

    # --- ingress ---

    async def ingest(self, payload: Any) -> Optional[AlertRecord]:
        """
        Apply one inbound update. Never raises on malformed input: updates
        without a usable symbol only land in the raw history.
        """
        self.store.append_raw(payload, epoch_ms(self.clock.now()))
        sym = symbol_of(payload)
        if sym is None:
            log.debug("update_without_symbol")
            return None
        kind = classify_update(payload)

        async with self._lock_for(sym):
            now = self.clock.now()
            record = self._apply(kind, sym, payload, now)

        if self.broadcaster is not None:
            self.broadcaster.publish("alert_received", {
                "symbol": sym, "alertType": kind.value, "timestamp": epoch_ms(now),
            })
        return record

    def _apply(self, kind: UpdateKind, sym: str, p: Payload, now: float) -> AlertRecord:
        if kind is UpdateKind.PRIMARY:
            return self._merge_primary(sym, p, now)
        handler = getattr(self, f"_on_{kind.name.lower()}")
        return handler(sym, p, now)

    def _upsert(self, sym: str, p: Payload, fields: dict[str, Any], now: float) -> AlertRecord:
        defaults = {"timeframe": p.get("timeframe"), **pj.basic_fields(p)}
        return self.store.upsert(sym, fields, epoch_ms(now), create_defaults=defaults)

    def _store_and_project(self, family: Family, sym: str, p: Payload, side: Payload, now: float,
                           extra: Optional[dict[str, Any]] = None) -> AlertRecord:
        self.side[family].put(sym, side, now)
        fields = pj.project(family, side)
        if extra:
            fields.update(extra)
        return self._upsert(sym, p, fields, now)

    # --- side-channel kinds ---

    def _on_quad_d4(self, sym: str, p: Payload, now: float) -> AlertRecord:
        flags = self.directions.quad_d4(sym, p)
        side = pj.quad_d4_side(p, flags, epoch_ms(now))
        log.debug("quad_d4_stored", symbol=sym, signal=side["signal"],
                  change=flags["changeDirection"], arrows=flags["arrowChangeDirection"])
        return self._store_and_project(Family.QUAD_D4, sym, p, side, now)

    def _on_octo(self, sym: str, p: Payload, now: float) -> AlertRecord:
        prev = self.side[Family.OCTO].peek(sym)
        flags = self.directions.octo(sym, p)
        self.patterns.update(sym, p, now)
        side = pj.octo_side(p, prev, flags, self.patterns.fields_for(sym, p))
        rec = self._store_and_project(Family.OCTO, sym, p, side, now, extra=pj.basic_fields(p))

        trend = classify_trend(rec, self.th)
        rec["trend"] = trend
        log.debug("octo_stored", symbol=sym, d1=side["d1"], d7=side["d7"],
                  cross=side["d1CrossD7"], trend=trend)
        self.edge.evaluate(sym, rec, trend, now)
        return rec

    def _on_macd(self, sym: str, p: Payload, now: float) -> AlertRecord:
        return self._store_and_project(Family.MACD, sym, p, pj.macd_side(p, epoch_ms(now)), now)

    def _on_day_change(self, sym: str, p: Payload, now: float) -> AlertRecord:
        return self._store_and_project(Family.DAY_CHANGE, sym, p, pj.day_change_side(p), now)

    def _on_quad_d1d2(self, sym: str, p: Payload, now: float) -> AlertRecord:
        return self._store_and_project(Family.QUAD_D1D2, sym, p, pj.quad_d1d2_side(p), now)

    def _on_vwap(self, sym: str, p: Payload, now: float) -> AlertRecord:
        return self._store_and_project(Family.VWAP, sym, p, pj.vwap_side(p), now)

    def _on_cci(self, sym: str, p: Payload, now: float) -> AlertRecord:
        return self._store_and_project(Family.CCI, sym, p, pj.cci_side(p), now)

    def _on_orb(self, sym: str, p: Payload, now: float) -> AlertRecord:
        side = pj.orb_side(p)
        session = str(side["orbType"]).lower()
        self.side[Family.ORB].put(orb_key(sym, session), side, now)
        fields = pj.project_orb(session, side) if session in ORB_SESSIONS else {}
        sector = self._resolve_sector(sym, p)
        if sector:
            fields["sector"] = sector
        return self._upsert(sym, p, fields, now)

    def _on_solo(self, sym: str, p: Payload, now: float) -> AlertRecord:
        side = pj.solo_side(p)
        return self._store_and_project(Family.SOLO, sym, p, side, now, extra=pj.basic_fields(p))

    def _on_dual(self, sym: str, p: Payload, now: float) -> AlertRecord:
        side = pj.dual_side(p)
        flag = self.big_trend.observe(sym, side["d1"], side["d2"], now)
        if flag is not None:
            log.info("big_trend_day_set", symbol=sym, d1=flag.d1Value, d2=flag.d2Value)
        extra = pj.basic_fields(p)
        extra["isBigTrendDay"] = self.big_trend.is_big_trend_day(sym, now)
        return self._store_and_project(Family.DUAL, sym, p, side, now, extra=extra)

    # --- primary merge ---

    def _merge_primary(self, sym: str, p: Payload, now: float) -> AlertRecord:
        side = self.side
        rec: AlertRecord = dict(p)

        if p.get("macdCrossingSignal"):
            side[Family.MACD].put(sym, pj.macd_side(p, epoch_ms(now)), now)

        day = side[Family.DAY_CHANGE].get_if_valid(sym, now)
        if day:
            if "changeFromPrevDay" in day:
                rec["changeFromPrevDay"] = day["changeFromPrevDay"]
            # the primary feed's own session volume always wins
            if not p.get("volume") and day.get("volume") is not None:
                rec["volume"] = day["volume"]

        rec["vwapCrossing"] = side[Family.VWAP].get_if_valid(sym, now) is not None

        quad = side[Family.QUAD_D1D2].get_if_valid(sym, now)
        if quad and quad.get("signal"):
            rec.update(pj.project(Family.QUAD_D1D2, quad))
        else:
            rec["quadStochSignal"] = None

        # octo overrides quad D4; both expired contributes nothing
        octo = side[Family.OCTO].get_if_valid(sym, now)
        if octo:
            rec.update(pj.project(Family.OCTO, octo))
        else:
            d4 = side[Family.QUAD_D4].get_if_valid(sym, now)
            if d4 and d4.get("signal"):
                rec.update(pj.project(Family.QUAD_D4, d4))
            else:
                rec["quadStochD4Signal"] = None

        self._fill_pattern(sym, rec)

        macd = side[Family.MACD].get_if_valid(sym, now)
        if macd and macd.get("signal"):
            rec.update(pj.project(Family.MACD, macd))
        else:
            rec["macdCrossingSignal"] = None

        cci = side[Family.CCI].get_if_valid(sym, now)
        if cci:
            rec.update(pj.project(Family.CCI, cci))

        for session in ORB_SESSIONS:
            orb = side[Family.ORB].get_if_valid(orb_key(sym, session), now)
            if orb:
                rec.update(pj.project_orb(session, orb))

        solo = side[Family.SOLO].get_if_valid(sym, now)
        if solo:
            rec.update(pj.project(Family.SOLO, solo))
            rec.update(pj.day_backfill(solo, rec))

        dual = side[Family.DUAL].get_if_valid(sym, now)
        if dual:
            rec.update(pj.project(Family.DUAL, dual))
            rec["isBigTrendDay"] = self.big_trend.is_big_trend_day(sym, now)
            rec["dualStochHistory"] = self.big_trend.history(sym)
            rec.update(pj.day_backfill(dual, rec))

        price = to_float(p.get("price"), None)
        prev_price = self._prev_price.get(sym)
        if price is not None:
            if prev_price is not None:
                rec["priceDirection"] = "up" if price > prev_price else "down" if price < prev_price else "unchanged"
            self._prev_price[sym] = price

        sector = self._resolve_sector(sym, p)
        if sector:
            rec["sector"] = sector

        rec["trend"] = classify_trend(rec, self.th)
        rec["receivedAt"] = epoch_ms(now)
        self.store.record_merge(rec)
        log.debug("primary_merged", symbol=sym, trend=rec["trend"], octo=octo is not None)
        return rec

    def _fill_pattern(self, sym: str, rec: AlertRecord) -> None:
        """Attach the tracked pattern wherever the record doesn't already carry a fresher one."""
        st = self.patterns.get(sym)
        if st is None:
            rec.setdefault("patternType", None)
            rec.setdefault("patternValue", None)
            rec.setdefault("patternStartTime", None)
            rec["patternCount"] = rec.get("patternCount") or 0
            rec["patternTrendBreak"] = rec.get("patternTrendBreak") or False
            return
        tracked = self.patterns.fields_for(sym)
        if not rec.get("patternType"):
            rec["patternType"] = tracked["patternType"]
        if rec.get("patternValue") is None:
            rec["patternValue"] = tracked["patternValue"]
        if not rec.get("patternStartTime"):
            rec["patternStartTime"] = tracked["patternStartTime"]
        if not rec.get("patternCount"):
            rec["patternCount"] = tracked["patternCount"]
        if rec.get("patternTrendBreak") is None:
            rec["patternTrendBreak"] = tracked["patternTrendBreak"]

    def _resolve_sector(self, sym: str, p: Payload) -> Optional[str]:
        reported = p.get("sector")
        if reported:
            if self.sector is not None:
                self.sector.remember(sym, reported)
            return str(reported)
        if self.sector is None:
            return None
        return self.sector.sector_for(sym)

    # --- queries ---

    def latest_per_symbol(self) -> list[AlertRecord]:
        return self.store.latest_per_symbol()

    def full_history(self, limit: Optional[int] = None) -> list[AlertRecord]:
        return self.store.full_history(limit)

    def stats(self) -> dict[str, Any]:
        return {
            **self.store.stats(),
            "side_channels": self.side.sizes(),
            "starred": len(self.watchlist.starred()),
            "tracked_trends": len(self.edge.states.snapshot()),
        }

    # --- lifecycle / persistence ---

    def reset(self) -> None:
        """Drop alerts and indicator state; watch-list and trend memory survive."""
        self.store.clear()
        self.side.clear()
        self.patterns.clear()
        self.directions.clear()
        self.big_trend.clear()
        self._prev_price.clear()
        log.info("engine_reset")

    def export_state(self) -> dict[str, Any]:
        """
        Copy of all mutable state for the persistence collaborator.

        Synchronous: runs between ingest transactions on the
        event loop and returns plain data, so the caller can serialise and
        write it without holding any symbol lock.
        """
        return {
            "version": STATE_VERSION,
            "exported_at": self.clock.now(),
            "side_channels": self.side.snapshot(),
            "alerts": self.store.snapshot(),
            "trend_states": self.edge.states.snapshot(),
            "patterns": self.patterns.snapshot(),
            "directions": self.directions.snapshot(),
            "big_trend": self.big_trend.snapshot(),
            "watchlist": self.watchlist.snapshot(),
            "sectors": self.sector.snapshot() if self.sector is not None else {},
            "previous_prices": dict(self._prev_price),
            "notifications_enabled": self.edge.enabled,
        }

    def import_state(self, state: dict[str, Any]) -> None:
        """Restore from `export_state()` output; side entries that expired meanwhile are dropped."""
        if not state:
            return
        now = self.clock.now()
        self.side.restore(state.get("side_channels") or {}, now)
        self.store.restore(state.get("alerts") or {})
        self.edge.states.restore(state.get("trend_states") or {})
        self.patterns.restore(state.get("patterns") or {})
        self.directions.restore(state.get("directions") or {})
        self.big_trend.restore(state.get("big_trend") or {})
        self.watchlist.restore(state.get("watchlist") or {})
        if self.sector is not None:
            self.sector.restore(state.get("sectors") or {})
        self._prev_price = {
            s: float(v) for s, v in (state.get("previous_prices") or {}).items()
            if to_float(v, None) is not None
        }
        if "notifications_enabled" in state:
            self.edge.enabled = bool(state["notifications_enabled"])
        log.info("engine_state_restored", **self.store.stats())
