"""Tests for the weather API fetcher and payload normalization."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from weather_live.fetcher import (
    FetchError,
    ValidationError,
    WeatherFetcher,
    normalize_observation,
    redact,
)

BASE_URL = "https://api.openweathermap.org/data/2.5/weather"


def _response(status: int = 200, json_body=None, text: str = "", json_error: bool = False):
    response = MagicMock()
    response.status_code = status
    response.ok = status < 400
    response.text = text
    response.url = f"{BASE_URL}?lat=1&lon=2&appid=secret-key&units=metric"
    if json_error:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = json_body
    return response


@pytest.fixture
def fetcher():
    fetcher = WeatherFetcher(api_key="secret-key", lat="1", lon="2")
    fetcher._session = MagicMock()
    return fetcher


class TestNormalizeObservation:
    def test_full_payload(self, payload) -> None:
        observation = normalize_observation(payload, timestamp="2026-10-19T00:00:00+00:00")
        assert observation.temperature == 31.4
        assert observation.windspeed == 3.6
        assert observation.winddirection == 220
        assert observation.weathercode == 803
        assert observation.timestamp == "2026-10-19T00:00:00+00:00"
        assert observation.raw is payload

    def test_missing_sections(self) -> None:
        observation = normalize_observation({"cod": 200})
        assert observation.temperature is None
        assert observation.windspeed is None
        assert observation.winddirection is None
        assert observation.weathercode is None
        assert observation.raw == {"cod": 200}

    def test_malformed_sections(self) -> None:
        observation = normalize_observation({
            "main": "hot",
            "wind": {"speed": "fast", "deg": True},
            "weather": [],
        })
        assert observation.temperature is None
        assert observation.windspeed is None
        assert observation.winddirection is None
        assert observation.weathercode is None

    def test_integer_values_become_floats(self) -> None:
        observation = normalize_observation({"main": {"temp": 30}, "wind": {"speed": 0}})
        assert observation.temperature == 30.0
        assert isinstance(observation.temperature, float)
        assert observation.windspeed == 0.0

    def test_timestamp_defaults_to_now(self) -> None:
        observation = normalize_observation({})
        assert observation.timestamp.endswith("+00:00")


class TestRedact:
    def test_removes_api_key(self) -> None:
        assert redact(f"{BASE_URL}?appid=abc123&units=metric") == (
            f"{BASE_URL}?appid=<redacted>&units=metric"
        )

    def test_empty(self) -> None:
        assert redact("") == ""


class TestWeatherFetcher:
    def test_fetch_success(self, fetcher, payload) -> None:
        fetcher._session.get.return_value = _response(json_body=payload)

        data, metadata = fetcher.fetch_current()

        assert data == payload
        assert metadata.status_code == 200
        assert "secret-key" not in metadata.source_url
        args, kwargs = fetcher._session.get.call_args
        assert args[0] == BASE_URL
        assert kwargs["params"] == {
            "lat": "1", "lon": "2", "appid": "secret-key", "units": "metric"
        }
        assert kwargs["timeout"] == 15

    def test_missing_api_key(self) -> None:
        fetcher = WeatherFetcher(api_key=None, lat="1", lon="2")
        fetcher._session = MagicMock()
        with pytest.raises(FetchError, match="Missing LAT, LON, or API_KEY"):
            fetcher.fetch_current()
        fetcher._session.get.assert_not_called()

    def test_http_error(self, fetcher) -> None:
        fetcher._session.get.return_value = _response(
            status=401, text='{"cod":401, "message": "Invalid API key"}'
        )
        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch_current()
        assert exc_info.value.status_code == 401
        assert str(exc_info.value).startswith("Weather API error 401: ")
        assert "Invalid API key" in str(exc_info.value)

    @pytest.mark.parametrize("status", [204, 200])
    def test_success_statuses(self, fetcher, payload, status: int) -> None:
        fetcher._session.get.return_value = _response(status=status, json_body=payload)
        data, metadata = fetcher.fetch_current()
        assert data == payload
        assert metadata.status_code == status

    @pytest.mark.parametrize("status", [301, 304, 404, 503])
    def test_non_2xx_statuses_fail(self, fetcher, status: int) -> None:
        fetcher._session.get.return_value = _response(status=status, text="moved")
        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch_current()
        assert exc_info.value.status_code == status
        fetcher._session.get.return_value.json.assert_not_called()

    def test_timeout(self, fetcher) -> None:
        fetcher._session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(FetchError, match="timed out"):
            fetcher.fetch_current()

    def test_connection_error_is_redacted(self, fetcher) -> None:
        fetcher._session.get.side_effect = requests.ConnectionError(
            "Max retries exceeded with url: /data/2.5/weather?appid=secret-key"
        )
        with pytest.raises(FetchError) as exc_info:
            fetcher.fetch_current()
        assert "secret-key" not in str(exc_info.value)

    def test_invalid_json(self, fetcher) -> None:
        fetcher._session.get.return_value = _response(json_error=True)
        with pytest.raises(ValidationError):
            fetcher.fetch_current()

    def test_non_object_json(self, fetcher) -> None:
        fetcher._session.get.return_value = _response(json_body=[1, 2, 3])
        with pytest.raises(ValidationError):
            fetcher.fetch_current()

    def test_validation_error_is_fetch_error(self) -> None:
        assert issubclass(ValidationError, FetchError)
