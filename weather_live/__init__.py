"""
Weather Live Poller

A small real-time weather service with:
- Fixed-interval polling of the OpenWeatherMap current weather endpoint
- Append-only SQLite persistence of every observation
- WebSocket broadcast of each new observation
- Liveness and read-only REST endpoints
"""

from .config import Settings, ConfigError, load_settings
from .database import Database
from .fetcher import WeatherFetcher, Observation, FetchError, ValidationError, normalize_observation
from .broadcaster import ConnectionManager, WEATHER_UPDATE_EVENT
from .scheduler import WeatherPoller, PollResult
from .api import create_app

__version__ = "1.0.0"

__all__ = [
    "Settings",
    "ConfigError",
    "load_settings",
    "Database",
    "WeatherFetcher",
    "Observation",
    "FetchError",
    "ValidationError",
    "normalize_observation",
    "ConnectionManager",
    "WEATHER_UPDATE_EVENT",
    "WeatherPoller",
    "PollResult",
    "create_app",
]
