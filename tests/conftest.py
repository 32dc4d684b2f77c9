"""Shared test fixtures and sample API responses."""

from __future__ import annotations

import copy

import pytest

from weather_live.config import load_settings
from weather_live.database import Database

SAMPLE_CURRENT_WEATHER = {
    "coord": {"lon": 100.5018, "lat": 13.7563},
    "weather": [
        {"id": 803, "main": "Clouds", "description": "broken clouds", "icon": "04d"}
    ],
    "base": "stations",
    "main": {
        "temp": 31.4,
        "feels_like": 37.2,
        "temp_min": 30.1,
        "temp_max": 32.6,
        "pressure": 1008,
        "humidity": 62,
    },
    "visibility": 10000,
    "wind": {"speed": 3.6, "deg": 220, "gust": 5.1},
    "clouds": {"all": 75},
    "dt": 1760850000,
    "sys": {"country": "TH", "sunrise": 1760827000, "sunset": 1760869800},
    "timezone": 25200,
    "id": 1609350,
    "name": "Bangkok",
    "cod": 200,
}


class FakeFetcher:
    """Stands in for WeatherFetcher; returns queued payloads or raises queued errors."""

    def __init__(self, *responses):
        self.responses = list(responses) or [sample_payload()]
        self.calls = 0
        self.closed = False

    def fetch_current(self):
        from weather_live.fetcher import FetchMetadata

        self.calls += 1
        response = self.responses[min(self.calls, len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        metadata = FetchMetadata(
            source_url="https://api.openweathermap.org/data/2.5/weather?appid=<redacted>",
            fetch_time="2026-10-19T00:00:00+00:00",
            status_code=200,
            response_time_ms=12,
        )
        return copy.deepcopy(response), metadata

    def close(self):
        self.closed = True


class RecordingBroadcaster:
    """Records publish() calls instead of sending over WebSocket."""

    def __init__(self, scheduled: bool = True):
        self.published = []
        self.scheduled = scheduled

    def publish(self, event, data):
        self.published.append((event, data))
        return self.scheduled


def sample_payload(**overrides) -> dict:
    payload = copy.deepcopy(SAMPLE_CURRENT_WEATHER)
    payload.update(overrides)
    return payload


@pytest.fixture
def settings(tmp_path):
    return load_settings({
        "API_KEY": "test-key",
        "LAT": "13.7563",
        "LON": "100.5018",
        "POLL_INTERVAL_SECONDS": "3600",
        "DB_PATH": str(tmp_path / "weather.db"),
    })


@pytest.fixture
def database(tmp_path):
    db = Database(str(tmp_path / "observations.db"))
    yield db
    db.close()


@pytest.fixture
def payload() -> dict:
    return sample_payload()


@pytest.fixture
def make_fetcher():
    return FakeFetcher


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()
