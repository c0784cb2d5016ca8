from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from typing import Callable, Optional

import aiohttp
import structlog

from trendboard.alerts.formatting import discord_payload
from trendboard.utils.backoff import jitter, next_backoff

log = structlog.get_logger("discord")

# --------- small rate limiter (token bucket) ----------

class RateLimiter:
    def __init__(self, rate_per_sec: float, burst: int = 1):
        self.rate = float(rate_per_sec)
        self.capacity = int(burst)
        self.tokens = float(burst)
        self.updated = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self):
        async with self._lock:
            now = time.monotonic()
            self.tokens = min(self.capacity, self.tokens + (now - self.updated) * self.rate)
            self.updated = now
            if self.tokens < 1.0:
                await asyncio.sleep((1.0 - self.tokens) / self.rate)
                self.updated = time.monotonic()
                self.tokens = 1.0
            self.tokens -= 1.0

# --------- config & client ----------

@dataclass(slots=True)
class DiscordConfig:
    webhook_url: str
    tts_enabled: bool = False
    tz_name: str = "America/New_York"
    timeout_s: float = 8.0
    rate_per_sec: float = 0.5   # webhooks allow ~30/min per channel
    burst: int = 5
    max_retries: int = 5
    initial_backoff_s: float = 0.5
    max_backoff_s: float = 8.0

def config_from_env() -> DiscordConfig:
    """Raises when the Discord transport is disabled or has no webhook configured."""
    enabled = os.getenv("DISCORD_ENABLED", "0").lower() in ("1", "true", "yes")
    url = os.getenv("DISCORD_WEBHOOK_URL")
    if not enabled or not url:
        raise RuntimeError("DISCORD_ENABLED / DISCORD_WEBHOOK_URL not set")
    return DiscordConfig(
        webhook_url=url,
        tts_enabled=os.getenv("DISCORD_TTS_ENABLED", "0").lower() in ("1", "true", "yes"),
        tz_name=os.getenv("NOTIFY_TZ", "America/New_York"),
    )

class DiscordNotifier:
    """
    Background worker that drains a NotifyQueue and posts embeds to a Discord
    webhook with rate limiting and retry w/ backoff. Failures are logged and
    the event is dropped.
    """
    def __init__(self, cfg: DiscordConfig, queue, payload_fn: Optional[Callable[[dict], dict]] = None):
        self.cfg = cfg
        self.q = queue
        self._session: Optional[aiohttp.ClientSession] = None
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self._rl = RateLimiter(rate_per_sec=cfg.rate_per_sec, burst=cfg.burst)
        self._payload_fn = payload_fn or self._default_payload
        self.sent = 0
        self.failed = 0

    def _default_payload(self, evt: dict) -> dict:
        return discord_payload(evt, tts_enabled=self.cfg.tts_enabled, tz_name=self.cfg.tz_name)

    async def start(self):
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name="discord-notifier")

    async def stop(self):
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if self._session:
            await self._session.close()
            self._session = None

    async def _loop(self):
        try:
            while not self._stop.is_set():
                evt = await self.q.get()
                await self.notify(evt)
        except asyncio.CancelledError:
            return

    async def notify(self, evt: dict) -> bool:
        try:
            payload = self._payload_fn(evt)
        except Exception as e:
            log.warning("discord_format_failed", symbol=evt.get("symbol"), err=str(e))
            self.failed += 1
            return False
        await self._rl.acquire()
        ok = await self._send(payload)
        if ok:
            self.sent += 1
            log.info("discord_sent", symbol=evt.get("symbol"), new=evt.get("newTrend"))
        else:
            self.failed += 1
        return ok

    async def _send(self, payload: dict) -> bool:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)

        backoff = self.cfg.initial_backoff_s
        for attempt in range(1, self.cfg.max_retries + 1):
            try:
                async with self._session.post(self.cfg.webhook_url, json=payload) as resp:
                    if resp.status in (200, 204):
                        return True
                    detail = await _maybe_text(resp)
                    log.warning("discord_send_failed", status=resp.status, body=detail, attempt=attempt)
                    if resp.status == 429:
                        # Discord sends retry_after (seconds) in the JSON body
                        ra = await _retry_after(resp)
                        if ra:
                            await asyncio.sleep(ra)
                            continue
                    if 500 <= resp.status < 600 or resp.status == 429:
                        await asyncio.sleep(jitter(backoff))
                        backoff = next_backoff(backoff, self.cfg.max_backoff_s)
                        continue
                    # other 4xx (bad webhook, bad payload): don't retry
                    return False
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                log.warning("discord_network_error", err=str(e), attempt=attempt)
                await asyncio.sleep(jitter(backoff))
                backoff = next_backoff(backoff, self.cfg.max_backoff_s)
        log.error("discord_give_up_after_retries")
        return False

async def _retry_after(resp: aiohttp.ClientResponse) -> Optional[float]:
    try:
        data = await resp.json(content_type=None)
        ra = data.get("retry_after")
        return float(ra) if ra else None
    except (aiohttp.ContentTypeError, ValueError, AttributeError, TypeError):
        return None

async def _maybe_text(resp: aiohttp.ClientResponse) -> str:
    try:
        return await resp.text()
    except (aiohttp.ClientError, UnicodeDecodeError):
        return "<no body>"
