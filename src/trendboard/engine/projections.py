from __future__ import annotations

from typing import Any, Optional

from trendboard.data.side_channel import Family
from trendboard.ingest.parser import is_true, to_float, valid_number, valid_text
from trendboard.utils.types import Payload

_QUAD_FLAGS = (
    "d2SwitchedToDown", "d3SwitchedToUp", "d3SwitchedToDown",
    "d1CrossedUnder75", "d2CrossedUnder75", "d1CrossedAbove50",
    "d2CrossedAbove50", "d4CrossedAbove25",
)
_OCTO_FLAGS = ("d1SwitchedToUp", "d1SwitchedToDown", "d7SwitchedToUp", "d7SwitchedToDown")
_OCTO_BOOL_PASSTHROUGH = (
    "d3BelowLastHL", "d3AboveLastLH", "d3BelowLastD7HL", "d3AboveLastD7LH",
    "d3AbovePredictedLH", "d7AbovePredictedLH",
)
_PATTERN_FIELDS = ("patternType", "patternValue", "patternStartTime", "patternCount", "patternTrendBreak")
DAY_FIELDS = ("previousClose", "changeFromPrevDay", "volume")
# quote fields any update may carry alongside its indicator values
BASIC_FIELDS = ("price", "time", "timeframe", *DAY_FIELDS, "prevDayVolume")

# side-payload key -> AlertRecord key, per family
FIELD_MAP: dict[Family, tuple[tuple[str, str], ...]] = {
    Family.VWAP: (("crossed", "vwapCrossing"),),
    Family.QUAD_D1D2: (
        ("signal", "quadStochSignal"),
        ("d1", "quadStochD1"),
        ("d2", "quadStochD2"),
        ("d4", "quadStochD4"),
    ),
    Family.QUAD_D4: (
        ("signal", "quadStochD4Signal"),
        *((f"d{i}", f"quadStochD{i}") for i in range(1, 5)),
        *((f"d{i}Direction", f"d{i}Direction") for i in range(1, 5)),
        ("d4Changed", "qsD4Changed"),
        ("directionChanged", "qsDirectionChanged"),
        ("changeDirection", "qsChangeDirection"),
        ("arrowChangeDirection", "qsArrowChangeDirection"),
        ("changeTimestamp", "qsChangeTimestamp"),
        *((f, f) for f in _QUAD_FLAGS),
    ),
    Family.OCTO: (
        *((f"d{i}", f"octoStochD{i}") for i in range(1, 9)),
        *((f"d{i}Direction", f"d{i}Direction") for i in range(1, 9)),
        *((f, f) for f in (
            "d8Signal", "d1d2Cross", "d1CrossD7", "timeframe1_4", "timeframe5_8",
            *_OCTO_FLAGS, *_PATTERN_FIELDS, *_OCTO_BOOL_PASSTHROUGH,
            "d3PredictedThirdLH", "d7PredictedThirdLH", "calculatedTrend", "ttsMessage",
        )),
    ),
    Family.MACD: (
        ("signal", "macdCrossingSignal"),
        ("timestamp", "macdCrossingTimestamp"),
        ("macd", "macd"),
        ("macdSignal", "macdSignal"),
        ("macdHistogram", "macdHistogram"),
    ),
    Family.CCI: tuple((f, f) for f in ("cciCrossover", "cciDirection", "cciValue", "cciMAValue")),
    Family.SOLO: (
        ("d2", "soloStochD2"),
        ("d2Direction", "soloStochD2Direction"),
        ("d2Pattern", "soloStochD2Pattern"),
        ("d2PatternValue", "soloStochD2PatternValue"),
    ),
    Family.DUAL: (
        ("d1", "dualStochD1"),
        ("d1Direction", "dualStochD1Direction"),
        ("d1Pattern", "dualStochD1Pattern"),
        ("d1PatternValue", "dualStochD1PatternValue"),
        ("d2", "dualStochD2"),
        ("d2Direction", "dualStochD2Direction"),
        ("highLevelTrend", "dualStochHighLevelTrend"),
        ("highLevelTrendType", "dualStochHighLevelTrendType"),
        ("highLevelTrendDiff", "dualStochHighLevelTrendDiff"),
    ),
    Family.DAY_CHANGE: (("changeFromPrevDay", "changeFromPrevDay"), ("volume", "volume")),
}

_ORB_MAP = (
    ("orbStatus", "OrbStatus"),
    ("priceDirection", "PriceDirection"),
    ("orbCrossover", "OrbCrossover"),
    ("orbHigh", "OrbHigh"),
    ("orbLow", "OrbLow"),
    ("orbMid", "OrbMid"),
)

def project(family: Family, side: Optional[Payload]) -> dict[str, Any]:
    """Map a family's side payload onto record field names; only keys present are copied."""
    if not side:
        return {}
    return {dst: side[src] for src, dst in FIELD_MAP[family] if src in side}

def project_orb(prefix: str, side: Optional[Payload]) -> dict[str, Any]:
    # prefix is the ORB session: "london" | "ny"
    if not side:
        return {}
    return {f"{prefix}{suffix}": side.get(src) for src, suffix in _ORB_MAP}

def basic_fields(p: Payload) -> dict[str, Any]:
    return {k: p[k] for k in BASIC_FIELDS if p.get(k) is not None}

def day_backfill(side: Optional[Payload], record: dict[str, Any]) -> dict[str, Any]:
    """Day fields from a solo/dual side payload, only where the record has none."""
    if not side:
        return {}
    return {
        k: side[k] for k in DAY_FIELDS
        if side.get(k) is not None and k not in record
    }

# --- side payload builders (one per family) ---

def vwap_side(p: Payload) -> Payload:
    return {"crossed": True}

def quad_d1d2_side(p: Payload) -> Payload:
    return {
        "signal": p.get("quadStochSignal"),
        "d1": p.get("d1"),
        "d2": p.get("d2"),
        "d3": p.get("d3"),
        "d4": p.get("d4"),
        "k1": p.get("k1"),
    }

def quad_d4_side(p: Payload, flags: dict[str, Any], now_ms: int) -> Payload:
    side = {"signal": p.get("d4Signal")}
    for i in range(1, 5):
        side[f"d{i}"] = p.get(f"d{i}")
        side[f"d{i}Direction"] = p.get(f"d{i}Direction")
    side.update(flags)
    side["changeTimestamp"] = now_ms
    return side

def octo_side(p: Payload, prev: Optional[Payload], flags: dict[str, Any],
              pattern_fields: dict[str, Any]) -> Payload:
    """
    Octo payload with gaps filled from the previous valid values, so a
    producer glitch ("N/A", missing series) never blanks the record.
    """
    prev = prev or {}
    side: Payload = {}
    for i in range(1, 9):
        side[f"d{i}"] = valid_number(p.get(f"d{i}"), prev.get(f"d{i}"), "0")
        side[f"d{i}Direction"] = valid_text(p.get(f"d{i}Direction"), prev.get(f"d{i}Direction"), "flat")
    side["d8Signal"] = valid_text(p.get("d8Signal"), prev.get("d8Signal"), "Octo")
    side["d1d2Cross"] = valid_text(p.get("d1d2Cross"), prev.get("d1d2Cross"), "none")
    side["d1CrossD7"] = flags.get("d1CrossD7")
    side["timeframe1_4"] = valid_text(p.get("timeframe1_4"), prev.get("timeframe1_4"), "")
    side["timeframe5_8"] = valid_text(p.get("timeframe5_8"), prev.get("timeframe5_8"), "")
    for f in _OCTO_FLAGS:
        side[f] = flags.get(f, False)
    side.update(pattern_fields)
    for f in _OCTO_BOOL_PASSTHROUGH:
        side[f] = is_true(p.get(f))
    side["d3PredictedThirdLH"] = to_float(p.get("d3PredictedThirdLH"), None) or None
    side["d7PredictedThirdLH"] = to_float(p.get("d7PredictedThirdLH"), None) or None
    side["calculatedTrend"] = valid_text(p.get("calculatedTrend"), prev.get("calculatedTrend"), "Neutral")
    side["ttsMessage"] = valid_text(p.get("ttsMessage"), prev.get("ttsMessage"), "")
    return side

def macd_side(p: Payload, now_ms: int) -> Payload:
    side = {
        "signal": p.get("macdCrossingSignal"),
        "timestamp": p.get("macdCrossingTimestamp") or now_ms,
    }
    for k in ("macd", "macdSignal", "macdHistogram"):
        if k in p:
            side[k] = p[k]
    return side

def day_change_side(p: Payload) -> Payload:
    side = {"changeFromPrevDay": p.get("changeFromPrevDay")}
    if p.get("volume") is not None:
        side["volume"] = p["volume"]
    return side

def cci_side(p: Payload) -> Payload:
    return {k: p.get(k) for k in ("cciCrossover", "cciDirection", "cciValue", "cciMAValue")}

def orb_side(p: Payload) -> Payload:
    return {
        "orbType": p.get("orbType"),
        "orbStatus": p.get("orbStatus"),
        "priceDirection": p.get("priceDirection"),
        "orbCrossover": p.get("orbCrossover"),
        "orbHigh": p.get("orbHigh"),
        "orbLow": p.get("orbLow"),
        "orbMid": p.get("orbMid"),
        "sector": p.get("sector"),
    }

def solo_side(p: Payload) -> Payload:
    return {
        "d2": p.get("d2"),
        "d2Direction": p.get("d2Direction"),
        "d2Pattern": p.get("d2Pattern") or "",
        "d2PatternValue": p.get("d2PatternValue") or None,
        **{k: p.get(k) or None for k in DAY_FIELDS},
    }

def dual_side(p: Payload) -> Payload:
    return {
        "d1": p.get("d1"),
        "d1Direction": p.get("d1Direction"),
        "d1Pattern": p.get("d1Pattern") or "",
        "d1PatternValue": p.get("d1PatternValue") or None,
        "d2": p.get("d2"),
        "d2Direction": p.get("d2Direction") or "flat",
        "highLevelTrend": p.get("highLevelTrend") or False,
        "highLevelTrendType": p.get("highLevelTrendType") or "None",
        "highLevelTrendDiff": p.get("highLevelTrendDiff") or 0,
        **{k: p.get(k) or None for k in DAY_FIELDS},
    }
