"""Adhan Notifier — Configuration Loader.

Loads and validates application configuration from config/settings.yaml.
Resolves environment variables referenced via ${VAR_NAME} syntax.
Uses Python dataclasses for type-safe configuration access.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytz
import yaml
from dotenv import load_dotenv

from src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Path Constants ────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
SETTINGS_PATH = CONFIG_DIR / "settings.yaml"

# ── Environment Variable Pattern ─────────────────────────
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)}")


class ConfigurationError(ValueError):
    """Required configuration is missing or invalid. Fatal at startup."""


# ═══════════════════════════════════════════════════════════
# Configuration Dataclasses
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TelegramConfig:
    """Configuration for the Telegram bot and message delivery."""

    bot_token: str
    delivery_timeout_seconds: float = 10.0
    max_messages_per_second: int = 25


@dataclass(frozen=True)
class SchedulerConfig:
    """Timing of the daily build, dispatch tick and housekeeping jobs."""

    timezone: str
    daily_build_hour: int = 0
    daily_build_minute: int = 5
    dispatch_interval_seconds: int = 30
    housekeeping_interval_minutes: int = 60
    ledger_retention_hours: int = 24


@dataclass(frozen=True)
class StorageConfig:
    """Where subscriber and prayer-time documents live."""

    database_path: str
    legacy_data_dir: str = ""
    cache_ttl_seconds: int = 300


@dataclass(frozen=True)
class ServerConfig:
    """HTTP endpoint for schedule ingestion and health checks."""

    host: str = "0.0.0.0"
    port: int = 3001


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration container."""

    telegram: TelegramConfig
    scheduler: SchedulerConfig
    storage: StorageConfig
    server: ServerConfig
    default_lead_minutes: int
    city_label: str
    log_level: str


# ═══════════════════════════════════════════════════════════
# YAML Loading & Environment Variable Resolution
# ═══════════════════════════════════════════════════════════


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ${VAR_NAME} references in YAML values.

    Args:
        value: A string, dict, list, or primitive from parsed YAML.

    Returns:
        The same structure with all ${VAR_NAME} placeholders replaced
        by their environment variable values.

    Raises:
        ConfigurationError: If a referenced environment variable is not set.
    """
    if isinstance(value, str):
        for var_name in ENV_VAR_PATTERN.findall(value):
            env_value = os.environ.get(var_name)
            if not env_value:
                raise ConfigurationError(
                    f"Environment variable '${{{var_name}}}' is required but not set. "
                    f"Add it to your .env file or export it in your shell."
                )
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse a YAML file with UTF-8 encoding.

    Raises:
        ConfigurationError: If the file is missing, empty or not a mapping.
    """
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not data:
        raise ConfigurationError(f"Configuration file is empty: {path}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file must be a mapping: {path}")

    logger.debug("Loaded configuration from %s", path)
    return data


def _validate_keys(data: dict[str, Any], required: list[str], section: str) -> None:
    """Validate that all required keys exist in a config section.

    Raises:
        ConfigurationError: If any required key is missing.
    """
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration section '{section}' must be a mapping")
    missing = [key for key in required if key not in data]
    if missing:
        raise ConfigurationError(
            f"Missing required configuration keys in '{section}': {', '.join(missing)}"
        )


# ═══════════════════════════════════════════════════════════
# Dataclass Builders
# ═══════════════════════════════════════════════════════════


def _build_telegram_config(data: dict[str, Any]) -> TelegramConfig:
    _validate_keys(data, ["bot_token"], "telegram")
    return TelegramConfig(
        bot_token=str(data["bot_token"]),
        delivery_timeout_seconds=float(data.get("delivery_timeout_seconds", 10)),
        max_messages_per_second=int(data.get("max_messages_per_second", 25)),
    )


def _build_scheduler_config(data: dict[str, Any]) -> SchedulerConfig:
    """Build a SchedulerConfig from the 'scheduler' section.

    Raises:
        ConfigurationError: If the build time or intervals are out of range.
    """
    _validate_keys(data, ["timezone"], "scheduler")

    config = SchedulerConfig(
        timezone=str(data["timezone"]),
        daily_build_hour=int(data.get("daily_build_hour", 0)),
        daily_build_minute=int(data.get("daily_build_minute", 5)),
        dispatch_interval_seconds=int(data.get("dispatch_interval_seconds", 30)),
        housekeeping_interval_minutes=int(data.get("housekeeping_interval_minutes", 60)),
        ledger_retention_hours=int(data.get("ledger_retention_hours", 24)),
    )

    try:
        pytz.timezone(config.timezone)
    except pytz.UnknownTimeZoneError as e:
        raise ConfigurationError(f"Unknown timezone: {config.timezone}") from e

    if not (0 <= config.daily_build_hour <= 23 and 0 <= config.daily_build_minute <= 59):
        raise ConfigurationError(
            f"Invalid daily build time "
            f"{config.daily_build_hour}:{config.daily_build_minute:02d}"
        )
    # A tick interval of a minute or more could skip a whole minute
    if not (1 <= config.dispatch_interval_seconds < 60):
        raise ConfigurationError(
            f"dispatch_interval_seconds must be between 1 and 59, "
            f"got {config.dispatch_interval_seconds}"
        )
    return config


def _build_storage_config(data: dict[str, Any]) -> StorageConfig:
    _validate_keys(data, ["database_path"], "storage")
    return StorageConfig(
        database_path=str(data["database_path"]),
        legacy_data_dir=str(data.get("legacy_data_dir", "") or ""),
        cache_ttl_seconds=int(data.get("cache_ttl_seconds", 300)),
    )


def _build_server_config(data: dict[str, Any]) -> ServerConfig:
    return ServerConfig(
        host=str(data.get("host", "0.0.0.0")),
        port=int(data.get("port", 3001)),
    )


# ═══════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════


def load_config(
    settings_path: Path | None = None,
    env_path: Path | None = None,
) -> AppConfig:
    """Load the complete application configuration.

    Loads settings.yaml, resolves environment variables, validates all
    required fields, and returns a typed AppConfig instance.

    Args:
        settings_path: Override path to settings.yaml. Defaults to config/settings.yaml.
        env_path: Override path to .env file. Defaults to project root .env.

    Returns:
        A fully validated AppConfig instance.

    Raises:
        ConfigurationError: If the file is missing, a required field is
            missing, or a referenced environment variable is unset.
    """
    env_file = env_path or (PROJECT_ROOT / ".env")
    load_dotenv(env_file)
    logger.debug("Loaded environment from %s", env_file)

    raw_settings = _load_yaml(settings_path or SETTINGS_PATH)
    settings = _resolve_env_vars(raw_settings)

    _validate_keys(settings, ["telegram", "scheduler", "storage"], "settings")

    default_lead = int(settings.get("subscribers", {}).get("default_lead_minutes", 10))
    if not 0 <= default_lead <= 60:
        raise ConfigurationError(
            f"subscribers.default_lead_minutes must be between 0 and 60, got {default_lead}"
        )

    config = AppConfig(
        telegram=_build_telegram_config(settings["telegram"]),
        scheduler=_build_scheduler_config(settings["scheduler"]),
        storage=_build_storage_config(settings["storage"]),
        server=_build_server_config(settings.get("server", {})),
        default_lead_minutes=default_lead,
        city_label=str(settings.get("messages", {}).get("city_label", "")),
        log_level=str(settings.get("logging", {}).get("level", "INFO")),
    )

    logger.info("Configuration loaded successfully")
    logger.debug("Timezone: %s", config.scheduler.timezone)
    logger.debug("Database path: %s", config.storage.database_path)
    logger.debug("Default lead time: %d minutes", config.default_lead_minutes)

    return config
