from datetime import datetime, timedelta, timezone

import httpx
import pytest
from argon2 import PasswordHasher
from fastapi.testclient import TestClient

from oggole.auth import AuthService
from oggole.config import Settings
from oggole.database import build_engine, build_session_factory, init_db
from oggole.main import create_app

CRAWLER_KEY = "test-crawler-key"
WEATHER_KEY = "test-weather-key"

FORECAST_START = datetime(2026, 10, 19, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Naive-UTC clock the tests move by hand."""

    def __init__(self, now: datetime = datetime(2026, 10, 19, 12, 0)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def current_payload(name="Copenhagen", temp=11.5):
    return {
        "name": name,
        "main": {"temp": temp, "feels_like": 9.8, "humidity": 81},
        "weather": [{"description": "light rain", "icon": "10d"}],
        "wind": {"speed": 6.2},
    }


def forecast_payload(days=6):
    """Three-hourly entries starting at midnight UTC, eight per day."""
    entries = []
    for i in range(days * 8):
        moment = FORECAST_START + timedelta(hours=3 * i)
        day_index = i // 8
        slot = i % 8
        entries.append({
            "dt": int(moment.timestamp()),
            "main": {"temp_min": 5.0 + day_index + slot * 0.5, "temp_max": 8.0 + day_index + slot},
            "weather": [{"description": f"day {day_index} slot {slot}", "icon": f"0{slot}d"}],
        })
    return {"city": {"name": "Copenhagen", "timezone": 0}, "list": entries}


class FakeWeatherUpstream:
    """httpx handler standing in for OpenWeatherMap."""

    def __init__(self):
        self.calls = []
        self.fail_with_status = None
        self.raise_error = None
        self.current = current_payload()
        self.forecast = forecast_payload()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.rsplit("/", 1)[-1]
        self.calls.append((endpoint, dict(request.url.params)))
        if self.raise_error is not None:
            raise self.raise_error
        if self.fail_with_status is not None:
            return httpx.Response(self.fail_with_status, json={"message": "upstream says no"})
        if endpoint == "weather":
            return httpx.Response(200, json=self.current)
        return httpx.Response(200, json=self.forecast)

    def endpoints(self):
        return [endpoint for endpoint, _ in self.calls]


@pytest.fixture
def fast_hasher():
    # Minimal Argon2 costs keep the suite fast; production floors are tested separately
    return PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'oggole-test.db'}",
        cookie_secure=False,
        crawler_api_key=CRAWLER_KEY,
        weather_api_key=WEATHER_KEY,
        weather_api_base_url="https://weather.test/data/2.5",
    )


@pytest.fixture
def engine(settings):
    engine = build_engine(settings.database_url)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def auth_service(session_factory, fast_hasher, clock):
    return AuthService(session_factory, fast_hasher, clock=clock)


@pytest.fixture
def upstream():
    return FakeWeatherUpstream()


@pytest.fixture
def http_client(upstream):
    client = httpx.Client(transport=httpx.MockTransport(upstream))
    yield client
    client.close()


@pytest.fixture
def client(settings, fast_hasher, http_client):
    app = create_app(settings, password_hasher=fast_hasher, http_client=http_client)
    with TestClient(app) as test_client:
        yield test_client
