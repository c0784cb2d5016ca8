from trendboard.engine.patterns import HIGHER_LOW, LOWER_HIGH, PatternTracker
from tests.helpers.fakes import T0, octo

def feed(t, values, start=T0):
    st = None
    for i, v in enumerate(values):
        st = t.update("X", octo("X", d3=v), start + i * 60)
    return st

def test_pivot_fallback_detects_higher_low():
    t = PatternTracker()
    # low pivot 20, high pivot 40, then low pivot 25 > 20
    st = feed(t, [30, 20, 30, 40, 25, 35])
    assert st.type == HIGHER_LOW
    assert st.source == "D3"
    assert st.last_value == 25
    assert st.count == 1

def test_pivot_fallback_detects_lower_high():
    t = PatternTracker()
    # high 70, low 50, high 65 < 70
    st = feed(t, [60, 70, 60, 50, 65, 55])
    assert st.type == LOWER_HIGH
    assert st.last_value == 65

def test_no_pattern_without_history():
    t = PatternTracker()
    assert t.update("X", octo("X"), T0) is None
    f = t.fields_for("X")
    assert f["patternType"] is None
    assert f["patternCount"] == 0
    assert f["patternTrendBreak"] is False

def test_reported_pattern_continuation_and_break():
    t = PatternTracker()
    t.update("X", octo("X", d3=35, d3Pattern="Higher Low", d3PatternValue="30"), T0)
    st = t.update("X", octo("X", d3=33, d3Pattern="Higher Low", d3PatternValue="32"), T0 + 60)
    assert st.count == 2
    assert st.start_time == T0
    assert st.last_value == 32.0

    # no detection; d3 falls through the anchor
    st = t.update("X", octo("X", d3=29), T0 + 120)
    assert st.trend_break is True
    assert st.count == 3
    st = t.update("X", octo("X", d3=27), T0 + 180)
    assert st.trend_break is True

    f = t.fields_for("X")
    assert f["patternType"] == "Higher Low"
    assert f["patternStartTime"] == int(T0 * 1000)
    assert f["patternTrendBreak"] is True

    # a fresh detection of the other type resets the run and the break
    st = t.update("X", octo("X", d3=26, d3Pattern="Lower High", d3PatternValue="40"), T0 + 240)
    assert st.type == "Lower High"
    assert st.count == 1
    assert st.start_time == T0 + 240
    assert st.trend_break is False

def test_d7_label_used_when_d3_reports_none():
    t = PatternTracker()
    st = t.update("X", octo("X", d3Pattern="None", d7Pattern="Lower High", d7PatternValue="70"), T0)
    assert st.type == "Lower High"
    assert st.source == "D7"

def test_reported_break_flag_is_merged():
    t = PatternTracker()
    assert t.fields_for("X", {"d3TrendBreak": "true"})["patternTrendBreak"] is True

def test_snapshot_restore_keeps_pivot_history():
    t = PatternTracker()
    feed(t, [30, 20, 30, 40])
    t2 = PatternTracker()
    t2.restore(t.snapshot())
    st = None
    for i, v in enumerate([25, 35]):
        st = t2.update("X", octo("X", d3=v), T0 + 1000 + i)
    assert st.type == HIGHER_LOW
