"""Adhan Notifier — HTTP API Package.

Schedule ingestion and health endpoints (aiohttp).
"""

from src.api.server import create_app

__all__ = [
    "create_app",
]
