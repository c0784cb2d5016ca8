from __future__ import annotations
import asyncio
from dataclasses import dataclass

import structlog

log = structlog.get_logger("notify")

@dataclass(slots=True)
class QueueStats:
    enq_ok: int = 0
    enq_drop: int = 0
    deq_ok: int = 0

class NotifyQueue:
    """
    Bounded, non-blocking queue wrapper for notifications.
    - try_put(evt) drops on full and increments a counter
    - get() awaits like a normal queue
    """
    def __init__(self, maxsize: int = 2000):
        self._q: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.stats = QueueStats()

    def try_put(self, evt) -> bool:
        try:
            self._q.put_nowait(evt)
            self.stats.enq_ok += 1
            return True
        except asyncio.QueueFull:
            self.stats.enq_drop += 1
            return False

    async def get(self):
        item = await self._q.get()
        self.stats.deq_ok += 1
        return item

    def qsize(self) -> int:
        return self._q.qsize()

class NotifyFanout:
    """
    One notification event -> every registered transport queue.
    Used as the edge detector's `dispatch`; never blocks.
    """
    def __init__(self):
        self._targets: dict[str, NotifyQueue] = {}

    def add(self, name: str, q: NotifyQueue) -> None:
        self._targets[name] = q

    def names(self) -> list[str]:
        return list(self._targets)

    def __call__(self, evt: dict) -> int:
        delivered = 0
        for name, q in self._targets.items():
            if q.try_put(evt):
                delivered += 1
            else:
                log.warning("notify_queue_full", transport=name, symbol=evt.get("symbol"))
        return delivered
