from __future__ import annotations

import enum
import math
from typing import Any, Optional

from trendboard.utils.types import Payload

class UpdateKind(str, enum.Enum):
    """Closed set of inbound update kinds; values are the broadcast `alertType` strings."""
    QUAD_D4 = "quad_stoch_d4"
    OCTO = "octo_stoch"
    MACD = "macd_crossing"
    DAY_CHANGE = "day_change"
    QUAD_D1D2 = "quad_stoch"
    VWAP = "vwap_crossing"
    CCI = "cci"
    ORB = "orb"
    SOLO = "solo_stoch"
    DUAL = "dual_stoch"
    PRIMARY = "main_script"

_MISSING_TEXT = (None, "", "N/A")
_MISSING_NUMBER = (None, "", "N/A", "na")

def classify_update(p: Payload) -> UpdateKind:
    """
    Tag an inbound payload with exactly one UpdateKind.

    Discriminators are tested in a fixed priority order; several may co-occur
    (a Primary update can carry MACD fields), so Primary is the catch-all.
    A key present with a JSON null still counts as present.
    """
    if "d4Signal" in p:
        return UpdateKind.QUAD_D4
    if "d8Signal" in p:
        return UpdateKind.OCTO
    if "macdCrossingSignal" in p and not p.get("price"):
        return UpdateKind.MACD
    if "changeFromPrevDay" in p and not p.get("price"):
        return UpdateKind.DAY_CHANGE
    if "quadStochSignal" in p:
        return UpdateKind.QUAD_D1D2
    if is_true(p.get("vwapCrossing")):
        return UpdateKind.VWAP
    if "cciCrossover" in p:
        return UpdateKind.CCI
    if "orbType" in p and "orbStatus" in p:
        return UpdateKind.ORB
    if p.get("d2Signal") == "Solo":
        return UpdateKind.SOLO
    if p.get("d2Signal") == "Dual":
        return UpdateKind.DUAL
    return UpdateKind.PRIMARY

def symbol_of(p: Any) -> Optional[str]:
    """Return the update's symbol, or None when missing / not a non-empty string."""
    if not isinstance(p, dict):
        return None
    sym = p.get("symbol")
    if not isinstance(sym, str) or not sym.strip():
        return None
    return sym

# --- coercion helpers (fail-soft: never raise on producer data) ---

def to_float(v: Any, default: Optional[float] = 0.0) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return default
    try:
        x = float(v)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(x):
        return default
    return x

def is_true(v: Any) -> bool:
    return v is True or v == "true"

def valid_number(current: Any, previous: Any, default: Any = None) -> Any:
    """
    Keep `current` when it parses as a number, else fall back to the last
    valid `previous`, else `default`. Values are returned unconverted.
    """
    if current not in _MISSING_NUMBER and to_float(current, None) is not None:
        return current
    if previous not in _MISSING_TEXT:
        return previous
    return default

def valid_text(current: Any, previous: Any, default: Any = "") -> Any:
    if current not in _MISSING_TEXT:
        return current
    if previous not in _MISSING_TEXT:
        return previous
    return default

def pattern_value(v: Any) -> Any:
    """Numeric anchor of a reported pattern; non-numeric labels pass through."""
    if v in _MISSING_TEXT:
        return None
    num = to_float(v, None)
    return v if num is None else num

