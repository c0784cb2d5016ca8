from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

import structlog

from trendboard.alerts.rules import TrendLabel, TrendThresholds
from trendboard.alerts.state import TrendState, TrendStateBook
from trendboard.alerts.trend import slow_value
from trendboard.alerts.watchlist import Watchlist
from trendboard.ingest.parser import to_float
from trendboard.utils.types import NotificationEvent, NotificationKind

log = structlog.get_logger("edge")

class NotificationEdgeDetector:
    """
    Decides, per symbol, whether a freshly classified trend is worth a notification.

    Two triggers:
      - extreme: any symbol whose slow oscillator enters the <20 / >80 zone
        (fires once per zone entry, re-armed after leaving the zone)
      - trend change: starred symbols whose trend differs from the last one seen
        (the first observation is recorded silently)
    Emission goes through `dispatch`, which must not block.
    """
    def __init__(
        self,
        watchlist: Watchlist,
        dispatch: Optional[Callable[[NotificationEvent], Any]] = None,
        thresholds: Optional[TrendThresholds] = None,
        enabled: bool = True,
    ):
        self.watchlist = watchlist
        self.dispatch = dispatch
        self.th = thresholds or TrendThresholds()
        self.enabled = enabled
        self.states = TrendStateBook()

    def _zone(self, slow: Optional[float]) -> Optional[str]:
        if slow is None:
            return None
        if slow < self.th.extreme_low:
            return TrendLabel.VERY_SHORT.value
        if slow > self.th.extreme_high:
            return TrendLabel.VERY_LONG.value
        return None

    def evaluate(self, symbol: str, record: Mapping[str, Any], trend: str, now: float) -> Optional[NotificationEvent]:
        st = self.states.ensure(symbol)
        slow = slow_value(record)
        zone = self._zone(slow)
        if zone is None:
            st.extreme = None

        if zone is not None and st.previous_trend != zone and st.extreme != zone:
            evt = self._event(symbol, st.previous_trend or TrendLabel.NEUTRAL.value, zone,
                              record, slow, "extreme", now)
            st.previous_trend = zone
            st.extreme = zone
            return self._emit(st, evt)

        previous = st.previous_trend
        st.previous_trend = trend
        if not self.watchlist.is_starred(symbol):
            return None
        if previous is None:
            log.debug("initial_trend_recorded", symbol=symbol, trend=trend)
            return None
        if previous == trend:
            return None
        evt = self._event(symbol, previous, trend, record, slow, "trend_change", now)
        return self._emit(st, evt)

    def _emit(self, st: TrendState, evt: NotificationEvent) -> Optional[NotificationEvent]:
        if not self.enabled:
            log.debug("notification_suppressed_disabled", symbol=evt["symbol"], new=evt["newTrend"])
            return None
        st.last_notified_ts = evt["ts"]
        log.info("trend_notification", symbol=evt["symbol"], kind=evt["kind"],
                 old=evt["oldTrend"], new=evt["newTrend"], slow=evt.get("extremeValue"))
        if self.dispatch is not None:
            try:
                self.dispatch(evt)
            except Exception as e:
                log.warning("notification_dispatch_failed", symbol=evt["symbol"], err=str(e))
        return evt

    @staticmethod
    def _event(symbol: str, old: str, new: str, record: Mapping[str, Any],
               slow: Optional[float], kind: NotificationKind, now: float) -> NotificationEvent:
        return {
            "symbol": symbol,
            "oldTrend": old,
            "newTrend": new,
            "price": to_float(record.get("price"), None),
            "extremeValue": slow,
            "kind": kind,
            "ts": now,
        }

    def clear(self) -> None:
        self.states.clear()
