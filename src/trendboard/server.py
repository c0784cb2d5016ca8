from __future__ import annotations

import asyncio
import json
import os
from dataclasses import dataclass, field
from typing import Optional

import structlog
from aiohttp import web

from storage.redis_snapshot import Snapshotter
from trendboard.data.sector import SectorLookup
from trendboard.engine.merge import MergeEngine
from trendboard.notify.broadcast import Broadcaster
from trendboard.utils.time import epoch_ms

log = structlog.get_logger("server")

@dataclass(slots=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    sse_heartbeat_s: float = 15.0
    history_default_limit: int = 1000

def config_from_env() -> ServerConfig:
    return ServerConfig(
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
    )

@dataclass(slots=True)
class AppContext:
    engine: MergeEngine
    broadcaster: Broadcaster
    cfg: ServerConfig = field(default_factory=ServerConfig)
    snapshotter: Optional[Snapshotter] = None
    sector: Optional[SectorLookup] = None
    transports: dict[str, bool] = field(default_factory=dict)

CTX = web.AppKey("ctx", AppContext)

def _limit(request: web.Request, default: Optional[int]) -> Optional[int]:
    raw = request.query.get("limit")
    if raw is None:
        return default
    try:
        return max(0, int(raw))
    except ValueError:
        raise web.HTTPBadRequest(text="limit must be an integer")

# --- ingress ---

async def webhook(request: web.Request) -> web.Response:
    ctx = request.app[CTX]
    raw = await request.read()
    try:
        # UnicodeDecodeError is a ValueError
        payload = json.loads(raw.decode("utf-8"))
    except ValueError:
        log.warning("webhook_bad_json", size=len(raw))
        return web.json_response({"status": "error", "error": "invalid JSON"}, status=400)
    await ctx.engine.ingest(payload)
    return web.json_response({"status": "ok"})

# --- dashboard queries ---

async def alerts_latest(request: web.Request) -> web.Response:
    return web.json_response(request.app[CTX].engine.latest_per_symbol())

async def alerts_history(request: web.Request) -> web.Response:
    ctx = request.app[CTX]
    return web.json_response(ctx.engine.full_history(_limit(request, ctx.cfg.history_default_limit)))

async def alerts_raw(request: web.Request) -> web.Response:
    ctx = request.app[CTX]
    return web.json_response(ctx.engine.store.raw(_limit(request, ctx.cfg.history_default_limit)))

async def export_json(request: web.Request) -> web.Response:
    state = request.app[CTX].engine.export_state()
    return web.json_response(
        state,
        headers={"Content-Disposition": f'attachment; filename="trendboard-{epoch_ms(state["exported_at"])}.json"'},
    )

async def export_stats(request: web.Request) -> web.Response:
    ctx = request.app[CTX]
    stats = ctx.engine.stats()
    stats["subscribers"] = ctx.broadcaster.subscriber_count
    if ctx.snapshotter is not None:
        stats["snapshots"] = {"ok": ctx.snapshotter.saves_ok, "failed": ctx.snapshotter.saves_failed}
    return web.json_response(stats)

# --- watch-list & notification settings ---

async def starred_get(request: web.Request) -> web.Response:
    wl = request.app[CTX].engine.watchlist
    return web.json_response({"starred": wl.snapshot()})

async def starred_post(request: web.Request) -> web.Response:
    ctx = request.app[CTX]
    try:
        body = await request.json()
    except ValueError:
        return web.json_response({"status": "error", "error": "invalid JSON"}, status=400)
    starred = body.get("starred") if isinstance(body, dict) else None
    if not isinstance(starred, dict):
        return web.json_response({"status": "error", "error": "expected {\"starred\": {...}}"}, status=400)
    ctx.engine.watchlist.replace(starred)
    ctx.broadcaster.publish("starred_updated", {"starred": ctx.engine.watchlist.snapshot()})
    log.info("watchlist_synced", count=len(ctx.engine.watchlist.starred()))
    return web.json_response({"status": "ok", "count": len(ctx.engine.watchlist.starred())})

def _settings(ctx: AppContext) -> dict:
    return {"enabled": ctx.engine.edge.enabled, "transports": dict(ctx.transports)}

async def notification_settings_get(request: web.Request) -> web.Response:
    return web.json_response(_settings(request.app[CTX]))

async def notification_settings_post(request: web.Request) -> web.Response:
    ctx = request.app[CTX]
    try:
        body = await request.json()
    except ValueError:
        return web.json_response({"status": "error", "error": "invalid JSON"}, status=400)
    if not isinstance(body, dict) or not isinstance(body.get("enabled"), bool):
        return web.json_response({"status": "error", "error": "expected {\"enabled\": bool}"}, status=400)
    ctx.engine.edge.enabled = body["enabled"]
    ctx.broadcaster.publish("notification_settings_updated", _settings(ctx))
    log.info("notifications_toggled", enabled=body["enabled"])
    return web.json_response({"status": "ok", **_settings(ctx)})

# --- maintenance ---

async def save_data(request: web.Request) -> web.Response:
    ctx = request.app[CTX]
    if ctx.snapshotter is None:
        return web.json_response({"status": "error", "error": "persistence not configured"}, status=503)
    ok = await ctx.snapshotter.snapshot_now()
    return web.json_response({"status": "ok" if ok else "error"}, status=200 if ok else 500)

async def reset_alerts(request: web.Request) -> web.Response:
    ctx = request.app[CTX]
    ctx.engine.reset()
    ctx.broadcaster.publish("alerts_reset", {"timestamp": epoch_ms(ctx.engine.clock.now())})
    return web.json_response({"status": "ok"})

async def refresh_sectors(request: web.Request) -> web.Response:
    ctx = request.app[CTX]
    if ctx.sector is None:
        return web.json_response({"status": "error", "error": "sector lookup disabled"}, status=503)
    symbols = ctx.engine.store.symbols()
    if symbols:
        asyncio.get_running_loop().create_task(ctx.sector.refresh(symbols), name="sector-refresh-manual")
    return web.json_response({"status": "ok", "count": len(symbols)})

async def healthz(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})

# --- live events ---

async def events(request: web.Request) -> web.StreamResponse:
    """Server-sent events stream of broadcaster events."""
    ctx = request.app[CTX]
    resp = web.StreamResponse(headers={
        "Content-Type": "text/event-stream",
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
    })
    await resp.prepare(request)
    q = ctx.broadcaster.subscribe()
    try:
        await resp.write(_sse("connected", {"timestamp": epoch_ms(ctx.engine.clock.now())}))
        while True:
            try:
                evt = await asyncio.wait_for(q.get(), timeout=ctx.cfg.sse_heartbeat_s)
            except asyncio.TimeoutError:
                await resp.write(b": ping\n\n")
                continue
            await resp.write(_sse(evt["type"], evt["data"]))
    except ConnectionResetError:
        log.debug("sse_client_gone")
    finally:
        ctx.broadcaster.unsubscribe(q)
    return resp

def _sse(event_type: str, data: dict) -> bytes:
    body = json.dumps({"type": event_type, "data": data}, default=str)
    return f"data: {body}\n\n".encode()

def build_app(ctx: AppContext) -> web.Application:
    app = web.Application()
    app[CTX] = ctx
    app.add_routes([
        web.post("/webhook", webhook),
        web.get("/alerts", alerts_latest),
        web.get("/alerts/history", alerts_history),
        web.get("/alerts/raw", alerts_raw),
        web.get("/starred-symbols", starred_get),
        web.post("/starred-symbols", starred_post),
        web.get("/notification-settings", notification_settings_get),
        web.post("/notification-settings", notification_settings_post),
        web.post("/save-data", save_data),
        web.post("/reset-alerts", reset_alerts),
        web.post("/refresh-sectors", refresh_sectors),
        web.get("/export/json", export_json),
        web.get("/export/stats", export_stats),
        web.get("/events", events),
        web.get("/healthz", healthz),
    ])
    return app

class HttpServer:
    """start()/stop() wrapper around an aiohttp AppRunner."""
    def __init__(self, ctx: AppContext):
        self.ctx = ctx
        self._runner: Optional[web.AppRunner] = None

    async def start(self):
        self._runner = web.AppRunner(build_app(self.ctx))
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.ctx.cfg.host, self.ctx.cfg.port)
        await site.start()
        log.info("http_listening", host=self.ctx.cfg.host, port=self.ctx.cfg.port)

    async def stop(self):
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
