import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from trendboard.notify import discord
from trendboard.notify.discord import DiscordConfig, DiscordNotifier
from trendboard.notify.queue import NotifyQueue
from tests.helpers.fakes import T0

EVT = {"symbol": "NVDA", "oldTrend": "Neutral", "newTrend": "Very Long", "price": 480.1,
       "extremeValue": 85.0, "kind": "extreme", "ts": T0}

class _Webhook:
    """Scripted Discord webhook: returns the queued statuses in order, then 204."""
    def __init__(self, *responses):
        self.responses = list(responses)
        self.bodies = []

    async def handle(self, request):
        self.bodies.append(await request.json())
        if self.responses:
            status, body = self.responses.pop(0)
            return web.json_response(body, status=status)
        return web.Response(status=204)

async def _serve(hook):
    app = web.Application()
    app.router.add_post("/hook", hook.handle)
    server = TestServer(app)
    await server.start_server()
    return server

def _notifier(server, **kw):
    cfg = DiscordConfig(webhook_url=str(server.make_url("/hook")), initial_backoff_s=0.01,
                        max_backoff_s=0.02, rate_per_sec=1000, **kw)
    return DiscordNotifier(cfg, NotifyQueue())

def test_config_from_env(monkeypatch):
    monkeypatch.setenv("DISCORD_ENABLED", "0")
    monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.example/hook")
    with pytest.raises(RuntimeError):
        discord.config_from_env()
    monkeypatch.setenv("DISCORD_ENABLED", "1")
    monkeypatch.setenv("DISCORD_TTS_ENABLED", "true")
    cfg = discord.config_from_env()
    assert cfg.tts_enabled is True

@pytest.mark.asyncio
async def test_posts_embed():
    hook = _Webhook()
    server = await _serve(hook)
    n = _notifier(server, tts_enabled=True)
    try:
        assert await n.notify(EVT)
    finally:
        await n.stop()
        await server.close()
    assert n.sent == 1
    body = hook.bodies[0]
    assert body["embeds"][0]["title"] == "⭐ NVDA - Trend Changed"
    assert body["content"].endswith("Big Long.")

@pytest.mark.asyncio
async def test_retries_server_errors_and_rate_limits():
    hook = _Webhook((500, {"message": "oops"}), (429, {"retry_after": 0.01}))
    server = await _serve(hook)
    n = _notifier(server)
    try:
        assert await n.notify(EVT)
    finally:
        await n.stop()
        await server.close()
    assert len(hook.bodies) == 3

@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    hook = _Webhook((400, {"message": "Invalid Webhook Token"}))
    server = await _serve(hook)
    n = _notifier(server)
    try:
        assert await n.notify(EVT) is False
    finally:
        await n.stop()
        await server.close()
    assert len(hook.bodies) == 1
    assert n.failed == 1

@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    hook = _Webhook(*[(503, {})] * 3)
    server = await _serve(hook)
    n = _notifier(server, max_retries=3)
    try:
        assert await n.notify(EVT) is False
    finally:
        await n.stop()
        await server.close()
    assert len(hook.bodies) == 3
