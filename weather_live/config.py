"""
Configuration module for Weather Live Poller.

Settings are read from the environment (and a local .env file, if present).
"""

import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional

from dotenv import load_dotenv

DEFAULT_LAT = "13.7563"
DEFAULT_LON = "100.5018"
DEFAULT_POLL_INTERVAL_SECONDS = 60
MAX_POLL_INTERVAL_SECONDS = 365 * 24 * 3600
DEFAULT_REQUEST_TIMEOUT = 15
DEFAULT_PORT = 5000
DEFAULT_API_URL = "https://api.openweathermap.org/data/2.5/weather"
DEFAULT_DB_PATH = Path(__file__).parent.parent / "weather.db"
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class ConfigError(ValueError):
    """Raised when a setting cannot be used to start the service."""
    pass


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the poller and the API server."""
    lat: Optional[str]
    lon: Optional[str]
    api_key: Optional[str]
    poll_interval_seconds: float
    units: str
    api_url: str
    request_timeout: float
    db_path: str
    host: str
    port: int
    cors_origins: List[str]
    log_level: str

    @property
    def is_complete(self) -> bool:
        return bool(self.lat and self.lon and self.api_key)


def _parse_interval(value: Optional[str]) -> float:
    """
    Resolve the poll interval.

    Unset, zero and non-numeric values fall back to the default. Negative,
    infinite or oversized values cannot be scheduled and are rejected.
    """
    try:
        seconds = float(value) if value and value.strip() else 0.0
    except ValueError:
        seconds = 0.0
    if math.isnan(seconds) or seconds == 0:
        return float(DEFAULT_POLL_INTERVAL_SECONDS)
    if seconds < 0 or not math.isfinite(seconds) or seconds > MAX_POLL_INTERVAL_SECONDS:
        raise ConfigError(f"Invalid POLL_INTERVAL_SECONDS: {value!r}")
    return seconds


def _parse_timeout(value: Optional[str]) -> float:
    if not value or not value.strip():
        return float(DEFAULT_REQUEST_TIMEOUT)
    try:
        seconds = float(value)
    except ValueError:
        raise ConfigError(f"Invalid REQUEST_TIMEOUT: {value!r}")
    if not math.isfinite(seconds) or seconds <= 0:
        raise ConfigError(f"Invalid REQUEST_TIMEOUT: {value!r}")
    return seconds


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build settings from environment variables.

    Args:
        env: Mapping to read from. Defaults to os.environ after loading .env.

    Raises:
        ConfigError: If POLL_INTERVAL_SECONDS, REQUEST_TIMEOUT, PORT or
            LOG_LEVEL is not usable.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    port_text = env.get("PORT") or str(DEFAULT_PORT)
    try:
        port = int(port_text)
    except ValueError:
        raise ConfigError(f"Invalid PORT: {port_text!r}")

    log_level = (env.get("LOG_LEVEL") or "INFO").strip().upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"Invalid LOG_LEVEL: {log_level!r}")

    origins = env.get("CORS_ORIGINS", "*")

    return Settings(
        lat=env.get("LAT") or DEFAULT_LAT,
        lon=env.get("LON") or DEFAULT_LON,
        api_key=env.get("API_KEY") or None,
        poll_interval_seconds=_parse_interval(env.get("POLL_INTERVAL_SECONDS")),
        units=env.get("WEATHER_UNITS") or "metric",
        api_url=env.get("WEATHER_API_URL") or DEFAULT_API_URL,
        request_timeout=_parse_timeout(env.get("REQUEST_TIMEOUT")),
        db_path=env.get("DB_PATH") or str(DEFAULT_DB_PATH),
        host=env.get("HOST") or "0.0.0.0",
        port=port,
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        log_level=log_level,
    )
