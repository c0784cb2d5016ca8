from trendboard.engine.big_trend import HISTORY_POINTS, BigTrendDayTracker
from tests.helpers.fakes import T0

def test_flag_set_once_per_day():
    t = BigTrendDayTracker("America/New_York")
    flag = t.observe("X", 5, 50, T0)
    assert flag is not None
    assert flag.isBigTrendDay is True
    assert flag.d1Value == 5.0
    assert flag.timestamp == int(T0 * 1000)

    # later the same day: already set, and a calm reading does not unset it
    assert t.observe("X", 3, 50, T0 + 60) is None
    assert t.observe("X", 50, 50, T0 + 120) is None
    assert t.is_big_trend_day("X", T0 + 120)

def test_extremes_on_either_series_and_strict_bounds():
    t = BigTrendDayTracker()
    assert t.observe("A", 50, 95, T0) is not None
    assert t.observe("B", 10, 90, T0) is None
    assert not t.is_big_trend_day("B", T0)

def test_new_day_starts_unflagged():
    t = BigTrendDayTracker()
    t.observe("X", 95, 50, T0)
    next_day = T0 + 24 * 3600
    assert not t.is_big_trend_day("X", next_day)
    assert t.observe("X", 95, 50, next_day) is not None

def test_history_is_capped():
    t = BigTrendDayTracker()
    for i in range(HISTORY_POINTS + 10):
        t.observe("X", i, i, T0 + i)
    h = t.history("X")
    assert len(h) == HISTORY_POINTS
    assert h[-1]["d1"] == float(HISTORY_POINTS + 9)

def test_snapshot_restore():
    t = BigTrendDayTracker()
    t.observe("X", 95, 50, T0)
    t2 = BigTrendDayTracker()
    t2.restore(t.snapshot())
    assert t2.is_big_trend_day("X", T0 + 10)
    assert len(t2.history("X")) == 1
