"""Adhan Notifier — HTTP API.

Small aiohttp application:
  POST /api/update_times — replace the stored prayer times in full
  GET  /health           — liveness and engine counters

Usage:
    app = create_app(loader, builder, clock, health, queue, ledger)
    runner = web.AppRunner(app); await runner.setup()
    await web.TCPSite(runner, host, port).start()
"""

from __future__ import annotations

import json
from typing import Optional

from aiohttp import web

from src.database.loader import CachedLoader, parse_schedule
from src.scheduler.builder import QueueBuilder
from src.scheduler.ledger import IdempotencyLedger
from src.scheduler.work_queue import WorkQueue
from src.utils.clock import Clock
from src.utils.health import HealthMonitor
from src.utils.logger import get_logger

logger = get_logger(__name__)

_MAX_BODY_BYTES = 10 * 1024 * 1024  # 10 MB

LOADER_KEY = web.AppKey("loader", CachedLoader)
BUILDER_KEY = web.AppKey("builder", QueueBuilder)
CLOCK_KEY = web.AppKey("clock", Clock)
HEALTH_KEY = web.AppKey("health", HealthMonitor)
QUEUE_KEY = web.AppKey("queue", WorkQueue)
LEDGER_KEY = web.AppKey("ledger", IdempotencyLedger)
BREAKERS_KEY = web.AppKey("circuit_breakers", list)


async def update_times(request: web.Request) -> web.Response:
    """Replace the whole prayer-times document.

    Expects a JSON array of {"date": "YYYY-MM-DD", "fajr": "HH:MM", ...}.
    If the new data covers today, today's queue is rebuilt right away;
    the idempotency ledger keeps already-sent items from firing twice.
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return web.json_response({"message": "Invalid JSON body."}, status=400)

    if not isinstance(payload, list):
        return web.json_response(
            {"message": "Invalid data format. Expected an array."}, status=400,
        )

    days = parse_schedule(payload)
    loader = request.app[LOADER_KEY]
    if not await loader.save_schedule(days):
        return web.json_response({"message": "Failed to update prayer times."}, status=500)

    message = f"Successfully updated prayer_times.json with {len(days)} entries."
    logger.info(message)
    if len(days) != len(payload):
        logger.warning("Ignored %d record(s) without a valid date", len(payload) - len(days))

    today = request.app[CLOCK_KEY].today()
    if any(day.date == today for day in days):
        await request.app[BUILDER_KEY].build_daily_queue()

    return web.json_response({"message": message})


async def health(request: web.Request) -> web.Response:
    """Report engine health."""
    status = request.app[HEALTH_KEY].get_status(
        circuit_breakers=request.app[BREAKERS_KEY],
    )
    status["queue_size"] = len(request.app[QUEUE_KEY])
    status["ledger_size"] = len(request.app[LEDGER_KEY])
    return web.json_response({"status": "ok", **status})


def create_app(
    loader: CachedLoader,
    builder: QueueBuilder,
    clock: Clock,
    health_monitor: HealthMonitor,
    queue: WorkQueue,
    ledger: IdempotencyLedger,
    circuit_breakers: Optional[list] = None,
    client_max_size: Optional[int] = None,
) -> web.Application:
    """Build the aiohttp application with its collaborators attached."""
    app = web.Application(client_max_size=client_max_size or _MAX_BODY_BYTES)
    app[LOADER_KEY] = loader
    app[BUILDER_KEY] = builder
    app[CLOCK_KEY] = clock
    app[HEALTH_KEY] = health_monitor
    app[QUEUE_KEY] = queue
    app[LEDGER_KEY] = ledger
    app[BREAKERS_KEY] = list(circuit_breakers or [])

    app.router.add_post("/api/update_times", update_times)
    app.router.add_get("/health", health)
    return app
