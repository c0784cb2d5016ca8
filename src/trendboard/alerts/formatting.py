from __future__ import annotations

import html
from datetime import datetime, timezone
from typing import Any, Optional

from trendboard.utils.time import fmt_local

TREND_COLORS: dict[str, int] = {
    "Dead Long": 0x00FF00,
    "Very Long": 0x00E676,
    "BULL Cross": 0x00FF00,
    "Heavy Buy": 0x4CAF50,
    "Try Long": 0x8BC34A,
    "Switch Long": 0xCDDC39,
    "Neutral": 0x9E9E9E,
    "Switch Short": 0xFF9800,
    "Try Short": 0xFF5722,
    "Very Short": 0xF44336,
    "BEAR Cross": 0xFF0000,
    "Dead Short": 0x8B0000,
}
OVERSOLD_COLOR = 0xDC143C
DEFAULT_COLOR = 0x9E9E9E

def _money(price: Any) -> str:
    return f"${price}" if price not in (None, "", 0) else "$N/A"

def _fmt_slow(v: Optional[float]) -> str:
    return f"{v:.2f}" if v is not None else "N/A"

def _oversold(slow: Optional[float]) -> bool:
    return slow is not None and slow < 20

def tts_phrase(new_trend: str, slow: Optional[float]) -> Optional[str]:
    """Spoken action word for a trend; None means no speech (Neutral)."""
    if new_trend == "Neutral":
        return None
    if new_trend == "Dead Long":
        return "Dead Long"
    if new_trend == "Dead Short":
        return "Dead Short"
    if new_trend == "Heavy Buy":
        return "Heavy Buy"
    if _oversold(slow):
        return "Heavy Sell"
    return {
        "BULL Cross": "Small Buy",
        "BEAR Cross": "Small sell",
        "Switch Short": "Medium Short",
        "Very Short": "Big Short",
        "Very Long": "Big Long",
        "Switch Long": "Medium Buy",
        "Try Long": "Medium Buy",
        "Try Short": "Medium Sell",
    }.get(new_trend, new_trend)

def tts_content(symbol: str, phrase: str) -> str:
    # letters spelled out with commas so speech slows down: "O, N, D, S"
    spelled = ", ".join(symbol)
    return f"Ticker {spelled}. Ticker {spelled}. {phrase}."

def discord_payload(evt: dict, *, tts_enabled: bool = False, tz_name: str = "America/New_York") -> dict:
    """
    Webhook body for one trend notification: a single colour-coded embed,
    plus a spoken `content` line when TTS is on.
    """
    sym = evt.get("symbol", "?")
    old = evt.get("oldTrend", "Neutral")
    new = evt.get("newTrend", "Neutral")
    slow = evt.get("extremeValue")
    ts = float(evt.get("ts") or datetime.now(timezone.utc).timestamp())
    low = _oversold(slow)

    color = TREND_COLORS.get(new, DEFAULT_COLOR)
    if low and new != "Dead Short":
        color = OVERSOLD_COLOR

    if new == "Dead Long":
        title = f"🟢 ⚡ {sym} - DEAD LONG (D7 > 90, D7↑ D3↑)"
        description = f"🟢 **EXTREME LONG CONDITION** 🟢\nD7 > 90, D7 and D3 both going UP\n**{old}** → **{new}**"
    elif new == "Dead Short":
        title = f"🔴 ⚡ {sym} - DEAD SHORT (D7 < 10, D7↓ D3↓)"
        description = f"🔴 **EXTREME SHORT CONDITION** 🔴\nD7 < 10, D7 and D3 both going DOWN\n**{old}** → **{new}**"
    elif low:
        title = f"🔴 ⚠️ {sym} - Trend Changed (D7 < 20)"
        description = f"🔴 **OVERSOLD CONDITION** 🔴\n**{old}** → **{new}**"
    else:
        title = f"⭐ {sym} - Trend Changed"
        description = f"**{old}** → **{new}**"

    fields = [
        {"name": "Price", "value": _money(evt.get("price")), "inline": True},
        {"name": "Time", "value": fmt_local(ts, tz_name), "inline": True},
    ]
    if slow is not None:
        if new == "Dead Long":
            fields.append({"name": "🟢 D7 (EXTREME LONG)", "value": f"{_fmt_slow(slow)} ⚡", "inline": True})
        elif new == "Dead Short":
            fields.append({"name": "🔴 D7 (EXTREME SHORT)", "value": f"{_fmt_slow(slow)} ⚡", "inline": True})
        elif low:
            fields.append({"name": "🔴 D7 (OVERSOLD)", "value": f"**{_fmt_slow(slow)}** ⚠️", "inline": True})
        else:
            fields.append({"name": "D7", "value": _fmt_slow(slow), "inline": True})

    payload: dict[str, Any] = {
        "embeds": [{
            "title": title,
            "description": description,
            "color": color,
            "fields": fields,
            "timestamp": datetime.fromtimestamp(ts, timezone.utc).isoformat(),
            "footer": {"text": "Trading Dashboard Alert"},
        }]
    }
    if tts_enabled:
        phrase = tts_phrase(new, slow)
        if phrase:
            payload["tts"] = True
            payload["content"] = tts_content(sym, phrase)
    return payload

def email_subject(evt: dict) -> str:
    return f"⭐ {evt.get('symbol', '?')} Trend Changed: {evt.get('oldTrend')} → {evt.get('newTrend')}"

def email_html(evt: dict, tz_name: str = "America/New_York") -> str:
    sym = html.escape(str(evt.get("symbol", "?")))
    old = html.escape(str(evt.get("oldTrend")))
    new = html.escape(str(evt.get("newTrend")))
    ts = float(evt.get("ts") or datetime.now(timezone.utc).timestamp())
    when = datetime.fromtimestamp(ts, timezone.utc).strftime("%Y-%m-%d ") + fmt_local(ts, tz_name)
    return (
        f"<h2>⭐ Starred Alert: {sym}</h2>"
        "<p><strong>Trend Change Detected:</strong></p>"
        '<p style="font-size: 18px;">'
        f'<span style="color: #999;">{old}</span> → '
        f'<span style="color: #4CAF50; font-weight: bold;">{new}</span>'
        "</p>"
        f"<p><strong>Current Price:</strong> {html.escape(_money(evt.get('price')))}</p>"
        f"<p><strong>D7:</strong> {_fmt_slow(evt.get('extremeValue'))}</p>"
        f"<p><strong>Time:</strong> {when}</p>"
        "<hr>"
        '<p style="color: #666; font-size: 12px;">Automated notification from the trading dashboard.</p>'
    )

def format_notification_line(evt: dict, tz_name: str = "America/New_York") -> str:
    """One console line per notification."""
    sym = evt.get("symbol", "?")
    kind = "EXTREME" if evt.get("kind") == "extreme" else "TREND"
    ts = float(evt.get("ts") or 0)
    return (
        f"[{sym} {kind}] {fmt_local(ts, tz_name)} {evt.get('oldTrend')} → {evt.get('newTrend')}  |  "
        f"price {_money(evt.get('price'))}  D7 {_fmt_slow(evt.get('extremeValue'))}"
    )
