"""
weather_service.py — WeatherAPI.com client for official warnings and
current conditions.

Endpoints used (both take ``key`` and ``q``):

    GET {base}/forecast.json?days=1&alerts=yes&aqi=no
        → response["alerts"]["alert"] = [{"headline": ..., "desc": ...}, ...]
    GET {base}/current.json?aqi=no
        → response["current"] = {"temp_c", "condition": {"text", "icon"},
                                   "humidity", "wind_kph", "feelslike_c"}

Error Handling Strategy
========================
    No API key configured  → WeatherAPIKeyMissing (callers skip quietly)
    Network / timeout      → ExternalServiceError
    HTTP 4xx / 5xx         → ExternalServiceError with the status code
    Unexpected JSON shape  → ExternalServiceError

There is no retry here: the alert cycle polls again on its next tick.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from backend.app.alerts.models import WarningRecord
from backend.app.core.config import settings
from backend.app.core.errors import ConfigurationError, ExternalServiceError

logger = logging.getLogger(__name__)

SERVICE_NAME = "weatherapi"


class WeatherAPIKeyMissing(ConfigurationError):
    """Raised before any request when WEATHER_API_KEY is not set."""

    def __init__(self) -> None:
        super().__init__("WEATHER_API_KEY", "WEATHER_API_KEY not configured")


@dataclass
class CurrentConditions:
    """Current weather for the monitored location."""
    temperature_c: Optional[float]
    description: str
    humidity: Optional[float]
    wind_kph: Optional[float]
    feels_like_c: Optional[float]
    icon_url: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "temperature_c": self.temperature_c,
            "description": self.description,
            "humidity": self.humidity,
            "wind_kph": self.wind_kph,
            "feels_like_c": self.feels_like_c,
            "icon_url": self.icon_url,
        }


def parse_warnings(data: Dict[str, Any]) -> List[WarningRecord]:
    """Extract warning records from a forecast.json body."""
    alerts = (data.get("alerts") or {}).get("alert") or []
    if not isinstance(alerts, list):
        raise ExternalServiceError(SERVICE_NAME, "alerts.alert is not a list")
    return [
        WarningRecord(
            headline=str(a.get("headline") or "").strip(),
            description=str(a.get("desc") or "").strip(),
        )
        for a in alerts
        if isinstance(a, dict)
    ]


def parse_current(data: Dict[str, Any]) -> CurrentConditions:
    current = data.get("current")
    if not isinstance(current, dict):
        raise ExternalServiceError(SERVICE_NAME, "response has no 'current' block")
    condition = current.get("condition") or {}
    icon = condition.get("icon")
    return CurrentConditions(
        temperature_c=current.get("temp_c"),
        description=condition.get("text") or "",
        humidity=current.get("humidity"),
        wind_kph=current.get("wind_kph"),
        feels_like_c=current.get("feelslike_c"),
        # WeatherAPI returns protocol-relative icon URLs
        icon_url=f"https:{icon}" if icon and icon.startswith("//") else icon,
    )


class WeatherService:
    """
    Thin async client for the monitored location.

    Usage:
        service = WeatherService()
        warnings = await service.fetch_official_warnings()
        await service.close()
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        query: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.WEATHER_API_KEY
        self.base_url = (base_url or settings.WEATHER_API_BASE_URL).rstrip("/")
        self.query = query or settings.WEATHER_QUERY
        self.timeout_seconds = timeout_seconds or settings.WEATHER_FETCH_TIMEOUT
        self._http_client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _get_json(self, endpoint: str, **params: Any) -> Dict[str, Any]:
        if not self.api_key:
            raise WeatherAPIKeyMissing()

        try:
            response = await self._get_client().get(
                f"{self.base_url}/{endpoint}",
                params={"key": self.api_key, "q": self.query, **params},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                SERVICE_NAME, f"HTTP {e.response.status_code}",
                endpoint=endpoint, status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                SERVICE_NAME, str(e) or type(e).__name__, endpoint=endpoint,
            ) from e
        except ValueError as e:
            raise ExternalServiceError(SERVICE_NAME, "invalid JSON", endpoint=endpoint) from e

        if not isinstance(data, dict):
            raise ExternalServiceError(SERVICE_NAME, "unexpected response", endpoint=endpoint)
        return data

    async def fetch_official_warnings(self) -> List[WarningRecord]:
        """Active official warnings for the monitored location (possibly empty)."""
        data = await self._get_json("forecast.json", days=1, alerts="yes", aqi="no")
        warnings = parse_warnings(data)
        logger.info("Weather source returned %d active warning(s)", len(warnings),
                    extra={"warning_count": len(warnings)})
        return warnings

    async def fetch_current_conditions(self) -> CurrentConditions:
        data = await self._get_json("current.json", aqi="no")
        return parse_current(data)


async def log_current_conditions(service: WeatherService) -> None:
    """Periodic job body: log the current conditions, silently skip without a key."""
    if not service.is_configured:
        return
    conditions = await service.fetch_current_conditions()
    logger.info(
        "🌤️ Current weather: %s, %s°C",
        conditions.description, conditions.temperature_c,
    )
