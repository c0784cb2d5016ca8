from __future__ import annotations

from typing import Any, Literal, Optional, TypedDict

# ---- ingest-level primitives ----

Payload = dict[str, Any]          # untyped inbound producer update
AlertRecord = dict[str, Any]      # merged per-symbol record (camelCase keys)

CrossKind = Literal["bull", "bear"]
ChangeDirection = Literal["bullish", "bearish", "neutral"]

# ---- notification domain ----

NotificationKind = Literal["extreme", "trend_change"]

class NotificationEvent(TypedDict, total=False):
    symbol: str
    oldTrend: str
    newTrend: str
    price: Optional[float]
    extremeValue: Optional[float]
    kind: NotificationKind
    ts: float

# ---- broadcast domain ----

BroadcastType = Literal[
    "alert_received",
    "sector_updated",
    "starred_updated",
    "alerts_reset",
    "notification_settings_updated",
]

class BroadcastEvent(TypedDict):
    type: str
    data: dict
