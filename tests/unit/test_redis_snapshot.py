import json

import pytest

import storage.redis_snapshot as rs
from tests.helpers.fakes import FakeRedis

class _FakeRedisModule:
    def __init__(self):
        self.last_url = None
        self.instance = FakeRedis()

    def from_url(self, url, decode_responses=True):
        self.last_url = url
        return self.instance

def test_config_from_env(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")
    monkeypatch.setenv("SNAPSHOT_INTERVAL_S", "60")
    monkeypatch.delenv("SNAPSHOT_KEY", raising=False)
    cfg = rs.config_from_env()
    assert cfg.url == "redis://cache:6379/2"
    assert cfg.interval_s == 60.0
    assert cfg.key == "trendboard:state"
    assert rs.meta_key(cfg.key) == "trendboard:state:meta"

@pytest.mark.asyncio
async def test_save_and_load_through_lazy_client(monkeypatch):
    fake_mod = _FakeRedisModule()
    monkeypatch.setattr(rs, "redis", fake_mod)

    store = rs.RedisSnapshotStore(rs.SnapshotConfig(url="redis://x:1/0", key="k"))
    assert await store.save({"version": 1, "alerts": {"latest": {}}})
    assert fake_mod.last_url == "redis://x:1/0"
    assert json.loads(fake_mod.instance.kv["k"])["version"] == 1
    assert int(fake_mod.instance.hashes["k:meta"]["bytes"]) > 0

    assert await store.load() == {"version": 1, "alerts": {"latest": {}}}
    await store.close()
    assert fake_mod.instance.closed

@pytest.mark.asyncio
async def test_save_failure_is_reported_not_raised():
    store = rs.RedisSnapshotStore(rs.SnapshotConfig(key="k"), client=FakeRedis(fail=True))
    assert await store.save({"a": 1}) is False
    assert await store.load() is None

@pytest.mark.asyncio
async def test_load_absent_or_corrupt():
    r = FakeRedis()
    store = rs.RedisSnapshotStore(rs.SnapshotConfig(key="k"), client=r)
    assert await store.load() is None
    r.kv["k"] = "{not json"
    assert await store.load() is None
    r.kv["k"] = "[1, 2]"
    assert await store.load() is None

@pytest.mark.asyncio
async def test_snapshotter_counts_and_restores():
    r = FakeRedis()
    store = rs.RedisSnapshotStore(rs.SnapshotConfig(key="k"), client=r)
    state = {"n": 1}
    snap = rs.Snapshotter(store, export_fn=lambda: dict(state), interval_s=3600)

    assert await snap.snapshot_now()
    r.fail = True
    assert not await snap.snapshot_now()
    assert (snap.saves_ok, snap.saves_failed) == (1, 1)

    r.fail = False
    got = []
    assert await snap.restore_into(got.append)
    assert got == [{"n": 1}]

@pytest.mark.asyncio
async def test_restore_into_survives_bad_import():
    r = FakeRedis()
    r.kv["k"] = json.dumps({"n": 1})
    snap = rs.Snapshotter(rs.RedisSnapshotStore(rs.SnapshotConfig(key="k"), client=r), export_fn=dict)

    def boom(state):
        raise ValueError("bad state")

    assert await snap.restore_into(boom) is False

@pytest.mark.asyncio
async def test_stop_writes_final_snapshot():
    r = FakeRedis()
    snap = rs.Snapshotter(rs.RedisSnapshotStore(rs.SnapshotConfig(key="k"), client=r),
                          export_fn=lambda: {"final": True}, interval_s=3600)
    await snap.start()
    await snap.stop(final_snapshot=True)
    assert json.loads(r.kv["k"]) == {"final": True}
