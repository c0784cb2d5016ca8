from trendboard.alerts.rules import TrendThresholds
from trendboard.alerts.trend import classify_trend, slow_value

def rec(d7, d1="flat", d3="flat", d7dir="flat", **extra):
    r = {"octoStochD7": d7, "d1Direction": d1, "d3Direction": d3, "d7Direction": d7dir}
    r.update(extra)
    return r

def test_dead_long_and_dead_short():
    assert classify_trend(rec(92, d3="up", d7dir="up")) == "Dead Long"
    assert classify_trend(rec(5, d3="down", d7dir="down")) == "Dead Short"

def test_dead_long_beats_cross():
    assert classify_trend(rec(95, d3="up", d7dir="up", d1CrossD7="bear")) == "Dead Long"

def test_cross_labels():
    assert classify_trend(rec(50, d1CrossD7="bull")) == "BULL Cross"
    assert classify_trend(rec(50, d1CrossD7="bear")) == "BEAR Cross"

def test_heavy_buy_and_switch_short():
    assert classify_trend(rec(85, d3="up")) == "Heavy Buy"
    assert classify_trend(rec(85, d1SwitchedToDown=True)) == "Switch Short"

def test_oversold_branches():
    assert classify_trend(rec(15, d1="down")) == "Very Short"
    assert classify_trend(rec(15, d1SwitchedToDown=True)) == "Very Short"
    assert classify_trend(rec(15, d1SwitchedToUp=True)) == "Switch Long"

def test_try_long_and_try_short():
    assert classify_trend(rec(68, d1="up", d7dir="up")) == "Try Long"
    assert classify_trend(rec(30, d1="down")) == "Try Short"

def test_neutral_fallback():
    assert classify_trend(rec(50)) == "Neutral"
    assert classify_trend({}) == "Neutral"

def test_thresholds_are_strict():
    # exactly 90 is not Dead Long; falls to Heavy Buy
    assert classify_trend(rec(90, d3="up", d7dir="up")) == "Heavy Buy"
    # exactly 80 is neither Heavy Buy nor Switch Short
    assert classify_trend(rec(80, d3="up")) == "Neutral"
    # exactly 40 is neither Try Long nor Try Short
    assert classify_trend(rec(40, d1="up")) == "Neutral"
    assert classify_trend(rec(40, d1="down")) == "Neutral"

def test_reported_trend_wins_unless_neutral():
    assert classify_trend(rec(50, calculatedTrend="Heavy Buy")) == "Heavy Buy"
    assert classify_trend(rec(68, d1="up", calculatedTrend="Neutral")) == "Try Long"

def test_unparseable_slow_counts_as_zero():
    assert classify_trend(rec("N/A", d1="down")) == "Very Short"

def test_custom_thresholds():
    th = TrendThresholds(try_level=60.0)
    assert classify_trend(rec(55, d1="up"), th) == "Neutral"

def test_slow_value_prefers_projected_field():
    assert slow_value({"octoStochD7": "70", "d7": 10}) == 70.0
    assert slow_value({"d7": 12}) == 12.0
    assert slow_value({"price": 1}) is None
