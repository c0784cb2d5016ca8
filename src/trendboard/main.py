# src/trendboard/main.py
import os
import asyncio
import structlog
from dotenv import load_dotenv

from trendboard.alerts.edge import NotificationEdgeDetector
from trendboard.alerts.formatting import format_notification_line
from trendboard.alerts.notifiers import ConsoleNotifier
from trendboard.alerts.watchlist import Watchlist
from trendboard.data.sector import SectorLookup, config_from_env as sector_config_from_env
from trendboard.engine.merge import EngineConfig, MergeEngine
from trendboard.notify.broadcast import Broadcaster
from trendboard.notify.queue import NotifyFanout, NotifyQueue
from trendboard.server import AppContext, HttpServer, config_from_env as server_config_from_env

# Redis snapshot persistence
from storage.redis_snapshot import RedisSnapshotStore, Snapshotter, config_from_env as snapshot_config_from_env

# Notification transports (optional, built from env)
from trendboard.notify.discord import DiscordNotifier, config_from_env as discord_config_from_env
from trendboard.notify.mailer import EmailNotifier, config_from_env as email_config_from_env

load_dotenv()
log = structlog.get_logger("main")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# ---------------------------
# Main
# ---------------------------

async def main():
    tz_name = os.getenv("TREND_DAY_TZ", "America/New_York")

    broadcaster = Broadcaster()
    watchlist = Watchlist()

    # ----- Notifications -----
    fanout = NotifyFanout()
    transports: dict[str, bool] = {}
    workers = []

    if _env_flag("PRINT_NOTIFICATIONS", "1"):
        console_q = NotifyQueue(maxsize=2000)
        workers.append(ConsoleNotifier(format_fn=lambda e: format_notification_line(e, tz_name), queue=console_q))
        fanout.add("console", console_q)

    try:
        discord_cfg = discord_config_from_env()  # raises if env missing
        discord_q = NotifyQueue(maxsize=2000)
        workers.append(DiscordNotifier(cfg=discord_cfg, queue=discord_q))
        fanout.add("discord", discord_q)
        transports["discord"] = True
        log.info("discord_enabled", tts=discord_cfg.tts_enabled)
    except Exception:
        transports["discord"] = False
        log.info("discord_disabled_missing_env")

    try:
        email_cfg = email_config_from_env()
        email_q = NotifyQueue(maxsize=500)
        workers.append(EmailNotifier(cfg=email_cfg, queue=email_q))
        fanout.add("email", email_q)
        transports["email"] = True
        log.info("email_enabled", to=email_cfg.recipients)
    except Exception:
        transports["email"] = False
        log.info("email_disabled_missing_env")

    edge = NotificationEdgeDetector(
        watchlist,
        dispatch=fanout,
        enabled=_env_flag("NOTIFICATIONS_ENABLED", "1"),
    )

    # ----- Reference data -----
    sector_cfg = sector_config_from_env()
    sector = SectorLookup(cfg=sector_cfg, broadcaster=broadcaster) if sector_cfg.enabled else None

    engine = MergeEngine(
        EngineConfig(trend_day_tz=tz_name),
        watchlist=watchlist,
        edge=edge,
        sector=sector,
        broadcaster=broadcaster,
    )

    # ----- Persistence: restore before serving -----
    snapshot_store = RedisSnapshotStore(snapshot_config_from_env())
    snapshotter = Snapshotter(snapshot_store, engine.export_state)
    if await snapshotter.restore_into(engine.import_state):
        log.info("state_restored", symbols=len(engine.store.symbols()))

    server = HttpServer(AppContext(
        engine=engine,
        broadcaster=broadcaster,
        cfg=server_config_from_env(),
        snapshotter=snapshotter,
        sector=sector,
        transports=transports,
    ))

    # ----- Run everything -----
    tasks = [w.start() for w in workers]
    tasks.append(snapshotter.start())
    if sector is not None:
        tasks.append(sector.start(engine.store.symbols))
    await asyncio.gather(*tasks)
    await server.start()

    try:
        await asyncio.Event().wait()
    finally:
        # graceful shutdown: stop accepting updates, then persist
        await server.stop()
        try:
            await snapshotter.stop(final_snapshot=True)
        except Exception as e:
            log.warning("final_snapshot_failed", err=str(e))
        for obj in [*workers, *([sector] if sector is not None else [])]:
            try:
                await obj.stop()
            except Exception as e:
                log.warning("shutdown_stop_failed", component=type(obj).__name__, err=str(e))
        await snapshot_store.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
