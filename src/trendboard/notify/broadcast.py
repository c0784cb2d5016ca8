from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from trendboard.utils.types import BroadcastEvent, BroadcastType

log = structlog.get_logger("broadcast")

@dataclass(slots=True)
class BroadcastStats:
    published: int = 0
    delivered: int = 0
    dropped: int = 0

class Broadcaster:
    """
    Fire-and-forget fan-out of live events to subscribers (SSE clients).
    Each subscriber owns a bounded queue; a slow subscriber loses events
    rather than slowing the publisher.
    """
    def __init__(self, per_subscriber_maxsize: int = 500):
        self._maxsize = per_subscriber_maxsize
        self._subs: set[asyncio.Queue] = set()
        self.stats = BroadcastStats()

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        self._subs.add(q)
        log.info("subscriber_added", subscribers=len(self._subs))
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        self._subs.discard(q)
        log.info("subscriber_removed", subscribers=len(self._subs))

    def publish(self, event_type: BroadcastType, data: dict) -> None:
        evt: BroadcastEvent = {"type": event_type, "data": data}
        self.stats.published += 1
        for q in list(self._subs):
            try:
                q.put_nowait(evt)
                self.stats.delivered += 1
            except asyncio.QueueFull:
                # slow client; skip to keep ingest hot path
                self.stats.dropped += 1

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)
