from trendboard.data.side_channel import (
    FAMILY_WINDOWS_S,
    Family,
    SideChannelCache,
    SideChannelRepository,
    orb_key,
)

def test_vwap_window_four_vs_six_minutes():
    repo = SideChannelRepository()
    vwap = repo[Family.VWAP]
    vwap.put("AAPL", {"crossed": True}, now=0)
    assert vwap.get_if_valid("AAPL", now=4 * 60) == {"crossed": True}
    assert vwap.get_if_valid("AAPL", now=6 * 60) is None

def test_expired_entry_is_evicted_and_not_resurrected():
    c = SideChannelCache(Family.MACD, window_s=900)
    c.put("NVDA", {"signal": "bullish"}, now=100)
    assert c.get_if_valid("NVDA", now=100 + 901) is None
    assert "NVDA" not in c
    # even a read "back in time" can't bring it back
    assert c.get_if_valid("NVDA", now=100) is None

def test_window_boundary_is_inclusive():
    c = SideChannelCache(Family.CCI, window_s=3600)
    c.put("X", {"cciValue": 1}, now=0)
    assert c.get_if_valid("X", now=3600) is not None

def test_put_is_last_write_wins_and_resets_timestamp():
    c = SideChannelCache(Family.VWAP, window_s=300)
    c.put("X", {"v": 1}, now=0)
    c.put("X", {"v": 2}, now=250)
    assert c.get_if_valid("X", now=500) == {"v": 2}

def test_peek_ignores_expiry():
    c = SideChannelCache(Family.OCTO, window_s=60)
    c.put("X", {"d1": 10}, now=0)
    assert c.peek("X") == {"d1": 10}
    assert c.peek("missing") is None

def test_family_windows_table():
    assert FAMILY_WINDOWS_S[Family.VWAP] == 300
    assert FAMILY_WINDOWS_S[Family.QUAD_D1D2] == 600
    assert FAMILY_WINDOWS_S[Family.QUAD_D4] == FAMILY_WINDOWS_S[Family.OCTO] == 3600
    assert FAMILY_WINDOWS_S[Family.MACD] == 900
    assert FAMILY_WINDOWS_S[Family.ORB] == 240 * 60

def test_orb_sessions_are_independent_keys():
    repo = SideChannelRepository()
    orb = repo[Family.ORB]
    orb.put(orb_key("SPY", "london"), {"orbStatus": "inside"}, now=0)
    orb.put(orb_key("SPY", "ny"), {"orbStatus": "above"}, now=0)
    assert orb.get_if_valid("SPY_london", now=10)["orbStatus"] == "inside"
    assert orb.get_if_valid("SPY_ny", now=10)["orbStatus"] == "above"

def test_restore_drops_entries_expired_during_gap():
    repo = SideChannelRepository()
    repo[Family.VWAP].put("A", {"crossed": True}, now=1000)
    repo[Family.OCTO].put("A", {"d7": "55"}, now=1000)
    snap = repo.snapshot()

    fresh = SideChannelRepository()
    fresh.restore(snap, now=1000 + 10 * 60)
    assert fresh[Family.VWAP].peek("A") is None
    assert fresh[Family.OCTO].get_if_valid("A", now=1000 + 10 * 60) == {"d7": "55"}
