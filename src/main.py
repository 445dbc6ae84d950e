"""Adhan Notifier — Main Orchestrator.

Ties all components together: config, document store, cached loader,
work queue, ledger, Telegram bot, HTTP API and health monitoring.

Runs on a schedule with APScheduler:
  - Daily queue build (cron, 00:05 local time)
  - Dispatch tick (every 30 seconds)
  - Housekeeping: ledger and cache purge (every 60 minutes)

Usage:
    python -m src.main
    python scripts/run.py
"""

from __future__ import annotations

import asyncio
import signal
import sys
import traceback
from typing import Optional

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from telegram.ext import Application

from src.api.server import create_app
from src.config import AppConfig, ConfigurationError, load_config
from src.database.db import Database
from src.database.documents import DocumentStore, import_legacy_files
from src.database.loader import CachedLoader
from src.notifier.commands import CommandHandler
from src.notifier.dispatcher import Dispatcher
from src.notifier.telegram_bot import TelegramNotifier
from src.scheduler import (
    IdempotencyLedger,
    QueueBuilder,
    Rescheduler,
    SubscriberRegistry,
    WorkQueue,
)
from src.utils.clock import Clock
from src.utils.health import HealthMonitor
from src.utils.logger import get_logger, set_console_level
from src.utils.rate_limiter import AsyncRateLimiter

logger = get_logger(__name__)


class AdhanNotifier:
    """Main application orchestrator.

    Owns every engine component and the three scheduled jobs.

    Attributes:
        config: Full application configuration.
        db: Active database instance.
        health: HealthMonitor for engine metrics.
    """

    def __init__(self) -> None:
        """Initialize with default state. Call start() to run."""
        self.config: Optional[AppConfig] = None
        self.db: Optional[Database] = None
        self.health = HealthMonitor()

        self.clock: Optional[Clock] = None
        self.loader: Optional[CachedLoader] = None
        self.queue = WorkQueue()
        self.ledger: Optional[IdempotencyLedger] = None
        self.builder: Optional[QueueBuilder] = None
        self.registry: Optional[SubscriberRegistry] = None
        self.dispatcher: Optional[Dispatcher] = None

        self._tg_app: Optional[Application] = None
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._web_runner: Optional[web.AppRunner] = None
        self._running = False

    async def start(self) -> None:
        """Full application startup sequence.

        1. Load config (missing config is fatal)
        2. Open the document store, import legacy JSON files
        3. Build engine components
        4. Connect Telegram and start polling for commands
        5. Schedule build / dispatch / housekeeping jobs
        6. Build today's queue immediately
        7. Serve the HTTP API and keep alive
        """
        self._running = True

        try:
            # ── 1. Config ────────────────────────────────
            logger.info("═══ Loading configuration ═══")
            self.config = load_config()
            set_console_level(self.config.log_level)
            config = self.config

            # ── 2. Storage ───────────────────────────────
            logger.info("═══ Initializing storage ═══")
            self.db = Database(config.storage.database_path)
            await self.db.initialize()
            store = DocumentStore(self.db)
            imported = await import_legacy_files(store, config.storage.legacy_data_dir)
            if imported:
                logger.info("Imported %d legacy document(s)", imported)

            # ── 3. Engine ────────────────────────────────
            logger.info("═══ Initializing engine ═══")
            self.clock = Clock(config.scheduler.timezone)
            self.loader = CachedLoader(
                store, self.clock,
                ttl_seconds=config.storage.cache_ttl_seconds,
                default_lead_minutes=config.default_lead_minutes,
            )
            self.ledger = IdempotencyLedger(
                self.clock, retention_hours=config.scheduler.ledger_retention_hours,
            )
            self.builder = QueueBuilder(
                self.loader, self.queue, self.clock, self.health, config.city_label,
            )
            rescheduler = Rescheduler(
                self.loader, self.queue, self.clock, self.health, config.city_label,
            )
            self.registry = SubscriberRegistry(
                self.loader, rescheduler, config.default_lead_minutes,
            )

            # ── 4. Telegram ──────────────────────────────
            logger.info("═══ Connecting Telegram ═══")
            self._tg_app = Application.builder().token(config.telegram.bot_token).build()
            CommandHandler(self.registry, self.loader, self.clock).register(self._tg_app)
            await self._tg_app.initialize()

            telegram = TelegramNotifier(config.telegram, bot=self._tg_app.bot)
            if not await telegram.initialize():
                logger.error("Telegram bot connection failed! Continuing anyway...")

            self.dispatcher = Dispatcher(
                self.queue, self.ledger, telegram, self.registry, self.clock,
                self.health, delivery_timeout=config.telegram.delivery_timeout_seconds,
                rate_limiter=AsyncRateLimiter(config.telegram.max_messages_per_second),
            )

            await self._tg_app.start()
            await self._tg_app.updater.start_polling(drop_pending_updates=False)
            logger.info("Telegram bot is running and listening for commands...")

            # ── 5. Scheduler ─────────────────────────────
            logger.info("═══ Setting up scheduler ═══")
            sched = config.scheduler
            self._scheduler = AsyncIOScheduler(timezone=self.clock.tz)

            self._scheduler.add_job(
                self._run_daily_build,
                CronTrigger(
                    hour=sched.daily_build_hour,
                    minute=sched.daily_build_minute,
                    timezone=self.clock.tz,
                ),
                id="daily_build",
                max_instances=1,
                misfire_grace_time=300,
                name=f"Daily build ({sched.daily_build_hour:02d}:{sched.daily_build_minute:02d})",
            )
            self._scheduler.add_job(
                self._run_dispatch,
                IntervalTrigger(seconds=sched.dispatch_interval_seconds),
                id="dispatch",
                max_instances=1,
                coalesce=True,
                misfire_grace_time=5,
                name=f"Dispatch tick (every {sched.dispatch_interval_seconds}s)",
            )
            self._scheduler.add_job(
                self._run_housekeeping,
                IntervalTrigger(minutes=sched.housekeeping_interval_minutes),
                id="housekeeping",
                max_instances=1,
                name=f"Housekeeping (every {sched.housekeeping_interval_minutes}m)",
            )
            self._scheduler.start()
            logger.info("Scheduler started with 3 jobs")

            # ── 6. First build immediately ───────────────
            await self._run_daily_build()

            # ── 7. HTTP API ──────────────────────────────
            app = create_app(
                self.loader, self.builder, self.clock, self.health,
                self.queue, self.ledger,
                circuit_breakers=[telegram.circuit_breaker],
            )
            self._web_runner = web.AppRunner(app)
            await self._web_runner.setup()
            await web.TCPSite(
                self._web_runner, config.server.host, config.server.port,
            ).start()
            logger.info(
                "Backend server is running on http://%s:%d",
                config.server.host, config.server.port,
            )

            # ── 8. Keep alive ────────────────────────────
            logger.info("═══ Entering main loop ═══")
            while self._running:
                await asyncio.sleep(1)

        except ConfigurationError as e:
            logger.critical("FATAL: %s", e)
            raise SystemExit(1) from e
        except Exception as e:
            logger.error("Fatal error: %s", e)
            logger.error(traceback.format_exc())
        finally:
            await self.shutdown()

    async def _run_daily_build(self) -> None:
        """Rebuild today's queue."""
        try:
            if self.builder:
                await self.builder.build_daily_queue()
        except Exception as e:
            self.health.record_error("builder", str(e)[:200])
            logger.error("Daily build error: %s", e)

    async def _run_dispatch(self) -> None:
        """One dispatcher tick."""
        try:
            if self.dispatcher:
                await self.dispatcher.tick()
        except Exception as e:
            self.health.record_error("dispatcher", str(e)[:200])
            logger.error("Dispatch tick error: %s", e)
            logger.debug(traceback.format_exc())

    async def _run_housekeeping(self) -> None:
        """Purge expired ledger keys and cache entries."""
        if self.ledger:
            self.ledger.purge_expired()
        if self.loader:
            dropped = self.loader.purge_expired()
            if dropped:
                logger.debug("Housekeeping: dropped %d expired cache entr(ies)", dropped)
        logger.info(
            "Housekeeping: queue=%d, ledger=%d",
            len(self.queue), len(self.ledger) if self.ledger else 0,
        )

    async def shutdown(self) -> None:
        """Graceful shutdown: stop scheduler, server, bot, database."""
        logger.info("═══ Shutting down ═══")
        self._running = False

        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

        if self._web_runner:
            await self._web_runner.cleanup()
            self._web_runner = None

        if self._tg_app:
            try:
                if self._tg_app.updater and self._tg_app.updater.running:
                    await self._tg_app.updater.stop()
                if self._tg_app.running:
                    await self._tg_app.stop()
                await self._tg_app.shutdown()
            except Exception as e:
                logger.warning("Error stopping Telegram application: %s", e)
            self._tg_app = None

        if self.db:
            await self.db.close()

        logger.info("Shutdown complete")

    def stop(self) -> None:
        """Ask the main loop to exit."""
        self._running = False


def main() -> None:
    """Application entry point."""
    app = AdhanNotifier()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _signal_handler(sig, frame):
        logger.info("Signal %s received, shutting down...", sig)
        app.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        loop.run_until_complete(app.start())
    except SystemExit as e:
        sys.exit(e.code)
    except KeyboardInterrupt:
        pass
    finally:
        loop.close()


if __name__ == "__main__":
    main()
