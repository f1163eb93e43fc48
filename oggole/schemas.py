from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class UserResponse(BaseModel):
    """
    Safe user representation for API responses.

    Critical: Never include password_hash in any response.
    """
    id: int
    username: str
    email: str
    registration_time: datetime
    last_login_time: Optional[datetime] = None
    login_count: int

    model_config = ConfigDict(from_attributes=True)


class SessionResponse(BaseModel):
    """Returned by register/login. The token itself only travels in the cookie."""
    username: str
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessageResponse(BaseModel):
    """
    Generic message response for operations without specific return data.
    """
    message: str


class PageResponse(BaseModel):
    title: str
    url: str
    language: str
    last_updated: datetime
    content: str

    model_config = ConfigDict(from_attributes=True)


class BatchPagesRequest(BaseModel):
    """
    Crawler payload. Records stay loosely typed so one malformed page
    is counted as an error instead of rejecting the whole batch.
    """
    pages: list[Any]


class BatchPagesResponse(BaseModel):
    success_count: int
    error_count: int
    total: int


class Location(BaseModel):
    name: str
    lat: float
    lon: float


class CurrentConditions(BaseModel):
    temperature: float
    feels_like: float
    humidity: int
    description: str
    icon: str
    wind_speed: float


class ForecastDay(BaseModel):
    day: date
    temp_min: float
    temp_max: float
    description: str
    icon: str


class WeatherSnapshot(BaseModel):
    """One cache entry. Built completely before it is stored."""
    location: Location
    current_conditions: CurrentConditions
    forecast: list[ForecastDay]
    fetched_at: datetime
    expires_at: datetime

    model_config = ConfigDict(frozen=True)
