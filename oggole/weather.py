"""
Read-through cache in front of the OpenWeatherMap API.

The upstream is rate limited, so one snapshot (current conditions plus a
five day forecast) is kept for a fixed time. The slot is guarded by a
read-write lock that is never held across the network calls: on a miss
concurrent requests may each fetch, and the last completed fetch wins.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Iterator, Optional

import httpx

from oggole.database import utcnow
from oggole.exceptions import ConfigurationError, UpstreamError
from oggole.schemas import CurrentConditions, ForecastDay, Location, WeatherSnapshot

logger = logging.getLogger(__name__)

FORECAST_DAYS = 5


class ReadWriteLock:
    """
    Many readers or one writer.

    Waiting writers block new readers so a steady stream of reads
    cannot starve a cache update.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def parse_current(payload: dict[str, Any]) -> CurrentConditions:
    main = payload["main"]
    weather = (payload.get("weather") or [{}])[0]
    return CurrentConditions(
        temperature=main["temp"],
        feels_like=main.get("feels_like", main["temp"]),
        humidity=main.get("humidity", 0),
        description=weather.get("description", ""),
        icon=weather.get("icon", ""),
        wind_speed=(payload.get("wind") or {}).get("speed", 0.0),
    )


def summarize_forecast(payload: dict[str, Any], days: int = FORECAST_DAYS) -> list[ForecastDay]:
    """
    Collapse 3-hourly forecast entries into one summary per calendar day.

    Days are taken in the forecast location's local time. Each day keeps
    the running min/max temperature and the first description and icon
    seen. The first day (today) is dropped and at most `days` follow.
    """
    offset = timedelta(seconds=(payload.get("city") or {}).get("timezone", 0))
    summaries: dict[date, dict[str, Any]] = {}

    for entry in sorted(payload["list"], key=lambda e: e["dt"]):
        day = (datetime.fromtimestamp(entry["dt"], tz=timezone.utc) + offset).date()
        main = entry["main"]
        weather = (entry.get("weather") or [{}])[0]

        summary = summaries.get(day)
        if summary is None:
            summaries[day] = {
                "day": day,
                "temp_min": main["temp_min"],
                "temp_max": main["temp_max"],
                "description": weather.get("description", ""),
                "icon": weather.get("icon", ""),
            }
        else:
            summary["temp_min"] = min(summary["temp_min"], main["temp_min"])
            summary["temp_max"] = max(summary["temp_max"], main["temp_max"])

    return [ForecastDay(**summary) for summary in list(summaries.values())[1:days + 1]]


class WeatherCache:
    """
    Time-bounded read-through cache for one location at a time.

    The slot is keyed by coordinates; asking for other coordinates is a
    miss that replaces the entry. Expiry is checked lazily on read.
    """

    def __init__(
        self,
        client: httpx.Client,
        api_key: Optional[str],
        default_lat: float,
        default_lon: float,
        base_url: str = "https://api.openweathermap.org/data/2.5",
        ttl: timedelta = timedelta(minutes=15),
        timeout: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._client = client
        self._api_key = api_key
        self._default_lat = default_lat
        self._default_lon = default_lon
        self._base_url = base_url.rstrip("/")
        self._ttl = ttl
        self._timeout = timeout
        self._clock = clock

        self._lock = ReadWriteLock()
        self._snapshot: Optional[WeatherSnapshot] = None

    def get_weather(self, lat: Optional[float] = None, lon: Optional[float] = None) -> WeatherSnapshot:
        lat = self._default_lat if lat is None else lat
        lon = self._default_lon if lon is None else lon

        cached = self.cached()
        if cached is not None and _same_place(cached.location, lat, lon) and self._clock() < cached.expires_at:
            return cached

        if not self._api_key:
            raise ConfigurationError("Weather service is not configured")

        # Network calls happen outside the lock
        current = self._fetch("weather", lat, lon)
        forecast = self._fetch("forecast", lat, lon)

        try:
            location = Location(
                name=current.get("name") or (forecast.get("city") or {}).get("name", ""),
                lat=lat,
                lon=lon,
            )
            conditions = parse_current(current)
            days = summarize_forecast(forecast)
        except (AttributeError, KeyError, IndexError, TypeError, ValueError):
            logger.exception("Unexpected weather API payload")
            raise UpstreamError("Weather service returned an unexpected response")

        fetched_at = self._clock()
        snapshot = WeatherSnapshot(
            location=location,
            current_conditions=conditions,
            forecast=days,
            fetched_at=fetched_at,
            expires_at=fetched_at + self._ttl,
        )

        with self._lock.write():
            self._snapshot = snapshot

        logger.info("Weather refreshed for %.4f,%.4f", lat, lon)
        return snapshot

    def cached(self) -> Optional[WeatherSnapshot]:
        """Current slot contents, expired or not."""
        with self._lock.read():
            return self._snapshot

    def _fetch(self, endpoint: str, lat: float, lon: float) -> dict[str, Any]:
        params = {"lat": lat, "lon": lon, "appid": self._api_key, "units": "metric"}
        try:
            response = self._client.get(f"{self._base_url}/{endpoint}", params=params, timeout=self._timeout)
        except httpx.HTTPError as exc:
            # The request URL carries the API key; log the failure type only
            logger.error("Weather API %s request failed: %s", endpoint, type(exc).__name__)
            raise UpstreamError("Weather service is unavailable")

        if not response.is_success:
            logger.error("Weather API %s returned status %d", endpoint, response.status_code)
            raise UpstreamError("Weather service is unavailable")

        try:
            return response.json()
        except ValueError:
            logger.error("Weather API %s returned a non-JSON body", endpoint)
            raise UpstreamError("Weather service returned an unexpected response")


def _same_place(location: Location, lat: float, lon: float) -> bool:
    return round(location.lat, 4) == round(lat, 4) and round(location.lon, 4) == round(lon, 4)
