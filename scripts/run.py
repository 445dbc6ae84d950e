#!/usr/bin/env python3
"""Adhan Notifier — Application Runner.

Performs pre-flight checks and launches the main application.

Usage:
    python scripts/run.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

BANNER = r"""
╔══════════════════════════════════════════════════════════╗
║                                                          ║
║                 🕌  Adhan Notifier v1.0                  ║
║          Prayer-time alerts & reminders on Telegram      ║
║                                                          ║
╚══════════════════════════════════════════════════════════╝
"""

REQUIRED_ENV_VARS = [
    "TELEGRAM_BOT_TOKEN",
]

REQUIRED_FILES = [
    "config/settings.yaml",
]


def preflight_checks() -> bool:
    """Run pre-flight checks before starting the application.

    Checks:
      - .env file is loaded if present
      - Required environment variables are set
      - Required config files exist
      - data/ and logs/ directories exist (creates them)
      - settings.yaml parses and names a known timezone

    Returns:
        True if all checks pass, False otherwise.
    """
    os.chdir(str(PROJECT_ROOT))
    ok = True

    env_path = PROJECT_ROOT / ".env"
    if env_path.exists():
        from dotenv import load_dotenv
        load_dotenv(env_path)
        print("✅ .env loaded")
    else:
        print("⚠️  .env file not found, using the process environment")

    for var in REQUIRED_ENV_VARS:
        val = os.environ.get(var, "")
        if not val or val in ("your_bot_token_here", "test"):
            print(f"❌ {var} not set or invalid")
            ok = False
        else:
            masked = val[:6] + "..." + val[-4:] if len(val) > 10 else "***"
            print(f"✅ {var} = {masked}")

    for f in REQUIRED_FILES:
        if not (PROJECT_ROOT / f).exists():
            print(f"❌ {f} not found!")
            ok = False
        else:
            print(f"✅ {f} exists")

    for d in ("data", "logs"):
        (PROJECT_ROOT / d).mkdir(exist_ok=True)
        print(f"✅ {d}/ directory ready")

    if ok:
        ok = _check_settings()

    return ok


def _check_settings() -> bool:
    """Parse settings.yaml once so config errors show up before startup."""
    from src.config import ConfigurationError, load_config

    try:
        config = load_config()
    except ConfigurationError as e:
        print(f"❌ {e}")
        return False

    print(f"✅ Timezone {config.scheduler.timezone}, default reminder "
          f"{config.default_lead_minutes} min")
    print(f"✅ Database at {config.storage.database_path}")
    print(f"✅ API on {config.server.host}:{config.server.port}")
    return True


def main() -> None:
    """Entry point: run checks then start the application."""
    print(BANNER)

    print("═══ Pre-flight Checks ═══\n")
    if not preflight_checks():
        print("\n❌ Pre-flight checks failed! Fix the issues above and try again.")
        sys.exit(1)

    print("\n✅ All checks passed!\n")
    print("═══ Starting Adhan Notifier ═══\n")

    from src.main import main as app_main
    app_main()


if __name__ == "__main__":
    main()
