"""
Weather API fetcher module for Weather Live Poller.

Handles retrieval from the OpenWeatherMap "Current Weather Data" endpoint and
normalization of its JSON payload into an Observation record.

A failed request is reported as a FetchError; there is no retry. The poll
cycle that made the request is simply skipped.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15  # seconds
USER_AGENT = "WeatherLivePoller/1.0"
OPENWEATHER_CURRENT_URL = "https://api.openweathermap.org/data/2.5/weather"

# Upstream error bodies can be large HTML pages
MAX_ERROR_BODY = 500


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def redact(url: str) -> str:
    """Remove appid from URLs for safe logging."""
    return re.sub(r"(appid=)[^&]+", r"\1<redacted>", url or "")


@dataclass
class Observation:
    """A normalized weather reading derived from one upstream response."""
    temperature: Optional[float]
    windspeed: Optional[float]
    winddirection: Optional[float]
    weathercode: Optional[int]
    raw: Dict[str, Any]
    timestamp: str = field(default_factory=utcnow_iso)


@dataclass
class FetchMetadata:
    """Metadata about a fetch operation."""
    source_url: str
    fetch_time: str
    status_code: Optional[int]
    response_time_ms: int


class FetchError(Exception):
    """Custom exception for weather API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ValidationError(FetchError):
    """Raised when the upstream body is not a usable JSON object."""
    pass


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def normalize_observation(
    payload: Dict[str, Any],
    timestamp: Optional[str] = None
) -> Observation:
    """
    Map an OpenWeatherMap current-weather payload to an Observation.

    Missing or malformed sections become None. The payload itself is kept
    verbatim in ``raw``.
    """
    main = payload.get("main") if isinstance(payload.get("main"), dict) else {}
    wind = payload.get("wind") if isinstance(payload.get("wind"), dict) else {}

    weathercode = None
    conditions = payload.get("weather")
    if isinstance(conditions, list) and conditions and isinstance(conditions[0], dict):
        code = conditions[0].get("id")
        if isinstance(code, int) and not isinstance(code, bool):
            weathercode = code

    return Observation(
        temperature=_number(main.get("temp")),
        windspeed=_number(wind.get("speed")),
        winddirection=_number(wind.get("deg")),
        weathercode=weathercode,
        raw=payload,
        timestamp=timestamp or utcnow_iso(),
    )


class WeatherFetcher:
    """
    Fetcher for current conditions at a single coordinate.

    Features:
    - One shared HTTP session
    - API key redacted from every logged or raised URL
    - Response timing for status reporting
    """

    def __init__(
        self,
        api_key: Optional[str],
        lat: Optional[str],
        lon: Optional[str],
        units: str = "metric",
        base_url: str = OPENWEATHER_CURRENT_URL,
        timeout: float = DEFAULT_TIMEOUT
    ):
        self.api_key = api_key
        self.lat = lat
        self.lon = lon
        self.units = units
        self.base_url = base_url
        self.timeout = timeout
        self._session = self._create_session()

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({
            "User-Agent": USER_AGENT,
            "Accept": "application/json"
        })
        return session

    def _params(self) -> Dict[str, str]:
        return {
            "lat": str(self.lat),
            "lon": str(self.lon),
            "appid": str(self.api_key),
            "units": self.units,
        }

    def fetch_current(self) -> Tuple[Dict[str, Any], FetchMetadata]:
        """
        Fetch the current weather payload.

        Returns:
            Tuple of (decoded JSON payload, FetchMetadata)

        Raises:
            FetchError: On missing settings, network failure or non-2xx status.
            ValidationError: If the body is not a JSON object.
        """
        if not self.lat or not self.lon or not self.api_key:
            raise FetchError("Missing LAT, LON, or API_KEY in environment variables.")

        fetch_start = datetime.now(timezone.utc)

        try:
            response = self._session.get(
                self.base_url, params=self._params(), timeout=self.timeout
            )
        except requests.Timeout:
            raise FetchError(f"Request timed out after {self.timeout}s")
        except requests.ConnectionError as e:
            raise FetchError(f"Connection error - source unavailable: {redact(str(e))}")
        except requests.RequestException as e:
            raise FetchError(f"Request failed: {redact(str(e))}")

        response_time = int((datetime.now(timezone.utc) - fetch_start).total_seconds() * 1000)
        safe_url = redact(getattr(response, "url", "") or self.base_url)

        if not 200 <= response.status_code < 300:
            body = (response.text or "")[:MAX_ERROR_BODY]
            logger.debug(f"Weather API {response.status_code} from {safe_url}")
            raise FetchError(
                f"Weather API error {response.status_code}: {body}",
                status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ValidationError(f"Weather API returned invalid JSON: {e}")

        if not isinstance(payload, dict):
            raise ValidationError("Weather API returned a non-object JSON body")

        metadata = FetchMetadata(
            source_url=safe_url,
            fetch_time=fetch_start.isoformat(),
            status_code=response.status_code,
            response_time_ms=response_time
        )
        logger.debug(f"Fetched weather from {safe_url} in {response_time}ms")
        return payload, metadata

    def close(self) -> None:
        """Close HTTP session."""
        self._session.close()
