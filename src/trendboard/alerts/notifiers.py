from __future__ import annotations
import asyncio
import structlog
from typing import Callable, Optional

log = structlog.get_logger("notifier")

class ConsoleNotifier:
    """Prints each notification; drains its own queue when run as a worker."""
    def __init__(self, format_fn: Optional[Callable[[dict], str]] = None, queue=None):
        self._format_fn = format_fn
        self.q = queue
        self._task: Optional[asyncio.Task] = None

    async def send(self, evt: dict):
        if self._format_fn:
            try:
                text = self._format_fn(evt)
                print(text, flush=True)
                return
            except Exception as e:
                log.warning("console_format_failed", err=str(e))
        # fallback (raw)
        print(f"[TREND] {evt.get('symbol')} {evt.get('oldTrend')} -> {evt.get('newTrend')} "
              f"price={evt.get('price')} d7={evt.get('extremeValue')}", flush=True)

    async def start(self):
        if self.q is not None:
            self._task = asyncio.create_task(self._loop(), name="console-notifier")

    async def stop(self):
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _loop(self):
        try:
            while True:
                evt = await self.q.get()
                await self.send(evt)
        except asyncio.CancelledError:
            return
