from __future__ import annotations

from trendboard.utils.time import Clock

# 2023-11-14 22:13:20 UTC (17:13 New York)
T0 = 1_700_000_000.0

class FakeClock(Clock):
    def __init__(self, start: float = T0):
        self.t = float(start)

    def now(self) -> float:
        return self.t

    def advance(self, seconds: float) -> float:
        self.t += seconds
        return self.t

class RecordingDispatch:
    """Stands in for NotifyFanout; keeps every event it is handed."""
    def __init__(self):
        self.events: list[dict] = []

    def __call__(self, evt: dict) -> int:
        self.events.append(evt)
        return 1

class FakePipeline:
    def __init__(self, owner: "FakeRedis"):
        self.owner = owner
        self.cmds: list[tuple] = []

    def set(self, key, value):
        self.cmds.append(("set", key, value))

    def hset(self, key, mapping=None):
        self.cmds.append(("hset", key, mapping))

    async def execute(self):
        if self.owner.fail:
            raise ConnectionError("redis down")
        for cmd in self.cmds:
            if cmd[0] == "set":
                self.owner.kv[cmd[1]] = cmd[2]
            else:
                self.owner.hashes.setdefault(cmd[1], {}).update(cmd[2] or {})
        self.cmds.clear()

class FakeRedis:
    def __init__(self, fail: bool = False):
        self.kv: dict[str, str] = {}
        self.hashes: dict[str, dict] = {}
        self.fail = fail
        self.closed = False

    def pipeline(self):
        return FakePipeline(self)

    async def get(self, key):
        if self.fail:
            raise ConnectionError("redis down")
        return self.kv.get(key)

    async def aclose(self):
        self.closed = True

def octo(symbol: str = "AAPL", **overrides) -> dict:
    """An octo-stoch update with every series present."""
    p = {"symbol": symbol, "d8Signal": "Octo"}
    for i in range(1, 9):
        p[f"d{i}"] = 50
        p[f"d{i}Direction"] = "flat"
    p.update(overrides)
    return p
