"""
FastAPI route: current weather for the monitored location.

    GET /api/v1/weather/current   — conditions for the dashboard widget

Responses are cached in Redis for REDIS_WEATHER_TTL seconds. Without an
API key the endpoint answers 503; upstream failures answer 502.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.app.api.deps import get_weather_service
from backend.app.core.cache import cache_get, cache_set
from backend.app.core.config import settings
from backend.app.ingestion.weather_service import WeatherService

router = APIRouter(prefix="/api/v1/weather", tags=["weather"])

CACHE_KEY = "weather:current"


class CurrentConditionsOut(BaseModel):
    location: str
    temperature_c: Optional[float] = None
    description: str = ""
    humidity: Optional[float] = None
    wind_kph: Optional[float] = None
    feels_like_c: Optional[float] = None
    icon_url: Optional[str] = None
    cached: bool = False


@router.get("/current", response_model=CurrentConditionsOut)
async def current_weather(
    service: WeatherService = Depends(get_weather_service),
) -> CurrentConditionsOut:
    cached: Optional[Dict[str, Any]] = await cache_get(CACHE_KEY)
    if cached is not None:
        return CurrentConditionsOut(location=settings.ALERT_LOCATION_NAME, cached=True, **cached)

    conditions = await service.fetch_current_conditions()
    data = conditions.to_dict()
    await cache_set(CACHE_KEY, data, ttl=settings.REDIS_WEATHER_TTL)
    return CurrentConditionsOut(location=settings.ALERT_LOCATION_NAME, **data)
