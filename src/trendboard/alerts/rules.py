from __future__ import annotations

import enum
from dataclasses import dataclass

class TrendLabel(str, enum.Enum):
    DEAD_LONG = "Dead Long"
    DEAD_SHORT = "Dead Short"
    BULL_CROSS = "BULL Cross"
    BEAR_CROSS = "BEAR Cross"
    HEAVY_BUY = "Heavy Buy"
    SWITCH_SHORT = "Switch Short"
    VERY_SHORT = "Very Short"
    VERY_LONG = "Very Long"
    SWITCH_LONG = "Switch Long"
    TRY_LONG = "Try Long"
    TRY_SHORT = "Try Short"
    NEUTRAL = "Neutral"

@dataclass(slots=True, frozen=True)
class TrendThresholds:
    """
    Slow-oscillator (D7) levels used by the trend chain and the extreme trigger.
    All comparisons are strict.
    """
    dead_long: float = 90.0
    dead_short: float = 10.0
    heavy: float = 80.0         # Heavy Buy / Switch Short
    oversold: float = 20.0      # Very Short / Switch Long
    try_level: float = 40.0     # Try Long / Try Short
    extreme_low: float = 20.0   # global extreme trigger
    extreme_high: float = 80.0
