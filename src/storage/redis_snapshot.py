# src/storage/redis_snapshot.py
from __future__ import annotations

import asyncio
import json
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import redis.asyncio as redis
import structlog

log = structlog.get_logger("snapshot")

@dataclass(slots=True)
class SnapshotConfig:
    url: str = "redis://localhost:6379/0"
    key: str = "trendboard:state"
    interval_s: float = 300.0

def config_from_env() -> SnapshotConfig:
    return SnapshotConfig(
        url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        key=os.getenv("SNAPSHOT_KEY", "trendboard:state"),
        interval_s=float(os.getenv("SNAPSHOT_INTERVAL_S", "300")),
    )

def meta_key(key: str) -> str:
    # e.g. trendboard:state:meta
    return f"{key}:meta"

class RedisSnapshotStore:
    """
    Whole-state snapshots as one JSON document under a single Redis key,
    with a small metadata hash (saved_at, size) next to it.
    """
    def __init__(self, cfg: SnapshotConfig, client: Optional[redis.Redis] = None):
        self.cfg = cfg
        self._r = client

    def _client(self) -> redis.Redis:
        if self._r is None:
            self._r = redis.from_url(self.cfg.url, decode_responses=True)
        return self._r

    async def save(self, state: dict[str, Any]) -> bool:
        try:
            doc = json.dumps(state, default=str, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            log.error("snapshot_encode_failed", err=str(e))
            return False
        try:
            r = self._client()
            p = r.pipeline()
            p.set(self.cfg.key, doc)
            p.hset(meta_key(self.cfg.key), mapping={"saved_at": time.time(), "bytes": len(doc)})
            await p.execute()
        except Exception as e:
            # degraded: keep running in memory
            log.warning("snapshot_save_failed", err=str(e))
            return False
        log.info("snapshot_saved", key=self.cfg.key, bytes=len(doc))
        return True

    async def load(self) -> Optional[dict[str, Any]]:
        try:
            raw = await self._client().get(self.cfg.key)
        except Exception as e:
            log.warning("snapshot_load_failed", err=str(e))
            return None
        if not raw:
            log.info("snapshot_absent", key=self.cfg.key)
            return None
        try:
            data = json.loads(raw)
        except ValueError as e:
            log.warning("snapshot_decode_failed", err=str(e))
            return None
        return data if isinstance(data, dict) else None

    async def close(self):
        if self._r is not None:
            await self._r.aclose()
            self._r = None

class Snapshotter:
    """
    Periodic snapshot loop. `export_fn` must be a quick synchronous copy of
    in-memory state; the (slow) Redis write happens after it returns.
    """
    def __init__(self, store: RedisSnapshotStore, export_fn: Callable[[], dict[str, Any]],
                 interval_s: Optional[float] = None):
        self.store = store
        self.export_fn = export_fn
        self.interval_s = interval_s if interval_s is not None else store.cfg.interval_s
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self.saves_ok = 0
        self.saves_failed = 0

    async def snapshot_now(self) -> bool:
        try:
            state = self.export_fn()
        except Exception as e:
            log.error("snapshot_export_failed", err=str(e))
            self.saves_failed += 1
            return False
        ok = await self.store.save(state)
        if ok:
            self.saves_ok += 1
        else:
            self.saves_failed += 1
        return ok

    async def restore_into(self, import_fn: Callable[[dict[str, Any]], None]) -> bool:
        state = await self.store.load()
        if state is None:
            return False
        try:
            import_fn(state)
        except Exception as e:
            log.error("snapshot_import_failed", err=str(e))
            return False
        return True

    async def start(self):
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name="snapshotter")

    async def stop(self, final_snapshot: bool = True):
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if final_snapshot:
            await self.snapshot_now()

    async def _loop(self):
        try:
            while not self._stop.is_set():
                await asyncio.sleep(self.interval_s)
                await self.snapshot_now()
        except asyncio.CancelledError:
            return
