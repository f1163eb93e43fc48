from typing import Optional

from fastapi import APIRouter, Depends, Query

from oggole.dependencies import get_weather_cache
from oggole.schemas import WeatherSnapshot
from oggole.weather import WeatherCache

router = APIRouter(prefix="/api", tags=["weather"])


@router.get("/weather", response_model=WeatherSnapshot)
def weather(
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lon: Optional[float] = Query(None, ge=-180, le=180),
    cache: WeatherCache = Depends(get_weather_cache),
):
    """
    Current conditions and five day forecast, served from cache for 15 minutes.

    Defaults to the configured location.
    """
    return cache.get_weather(lat, lon)
