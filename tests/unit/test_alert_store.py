from trendboard.data.alert_store import AlertStore

def test_history_is_newest_first_and_capped():
    s = AlertStore(cap=3)
    for i in range(5):
        s.record_merge({"symbol": "A", "price": i, "receivedAt": i})
    assert [r["price"] for r in s.full_history()] == [4, 3, 2]
    assert [r["price"] for r in s.full_history(limit=2)] == [4, 3]
    assert s.latest("A")["price"] == 4

def test_latest_per_symbol_sorted_by_received_at():
    s = AlertStore()
    s.upsert("A", {"x": 1}, 100)
    s.upsert("B", {"x": 2}, 300)
    s.upsert("C", {"x": 3}, 200)
    assert [r["symbol"] for r in s.latest_per_symbol()] == ["B", "C", "A"]

def test_upsert_merges_and_applies_create_defaults_once():
    s = AlertStore()
    s.upsert("A", {"x": 1}, 100, create_defaults={"timeframe": "5m"})
    rec = s.upsert("A", {"y": 2}, 200, create_defaults={"timeframe": "1h"})
    assert rec == {"symbol": "A", "timeframe": "5m", "x": 1, "y": 2, "receivedAt": 200}

def test_readers_get_copies():
    s = AlertStore()
    s.upsert("A", {"x": 1}, 100)
    s.latest("A")["x"] = 99
    s.latest_per_symbol()[0]["x"] = 99
    assert s.latest("A")["x"] == 1

def test_raw_history_wraps_non_dict_payloads():
    s = AlertStore()
    s.append_raw({"symbol": "A"}, 1)
    s.append_raw("garbage", 2)
    raw = s.raw()
    assert raw[0] == {"payload": "garbage", "receivedAt": 2}
    assert raw[1] == {"symbol": "A", "receivedAt": 1}
    assert s.stats() == {"symbols": 0, "history": 0, "raw_history": 2}

def test_snapshot_restore_keeps_order():
    s = AlertStore()
    s.record_merge({"symbol": "A", "price": 1})
    s.record_merge({"symbol": "A", "price": 2})
    s2 = AlertStore()
    s2.restore(s.snapshot())
    assert [r["price"] for r in s2.full_history()] == [2, 1]
    assert s2.symbols() == ["A"]

def test_later_upsert_leaves_merged_history_entry_untouched():
    s = AlertStore()
    s.record_merge({"symbol": "A", "price": 1.0, "receivedAt": 100})
    s.upsert("A", {"price": 2.0, "octoStochD7": 70}, 200)
    assert s.full_history() == [{"symbol": "A", "price": 1.0, "receivedAt": 100}]
    assert s.latest("A")["price"] == 2.0
