"""
test_weather_service.py — Tests for the WeatherAPI.com client.

Covers:
    • Parsing of warnings and current conditions
    • Request parameters for forecast.json / current.json
    • Error mapping (missing key, HTTP errors, bad JSON)

Run with:
    pytest tests/test_weather_service.py -v
"""

from __future__ import annotations

import asyncio
import logging

import httpx
import pytest

from backend.app.alerts.models import WarningRecord
from backend.app.core.errors import ExternalServiceError
from backend.app.ingestion.weather_service import (
    WeatherAPIKeyMissing,
    WeatherService,
    log_current_conditions,
    parse_current,
    parse_warnings,
)

FORECAST_BODY = {
    "location": {"name": "Santa Isabel"},
    "alerts": {"alert": [
        {"headline": " Chuvas intensas ", "desc": "Acumulado de 50mm", "severity": "Moderate"},
        {"headline": "Vendaval", "desc": "Rajadas de 60 km/h"},
    ]},
}

CURRENT_BODY = {
    "current": {
        "temp_c": 21.5,
        "feelslike_c": 22.0,
        "humidity": 88,
        "wind_kph": 12.2,
        "condition": {"text": "Chuva moderada", "icon": "//cdn.weatherapi.com/64x64/day/302.png"},
    }
}


def _service(handler, api_key: str = "k123") -> WeatherService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WeatherService(
        api_key,
        base_url="https://weather.test/v1",
        query="Santa Isabel,Sao Paulo,Brazil",
        client=client,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Parsing
# ═══════════════════════════════════════════════════════════════════════════

class TestParsing:

    def test_parse_warnings(self):
        warnings = parse_warnings(FORECAST_BODY)
        assert warnings == [
            WarningRecord("Chuvas intensas", "Acumulado de 50mm"),
            WarningRecord("Vendaval", "Rajadas de 60 km/h"),
        ]

    @pytest.mark.parametrize("body", [
        {},
        {"alerts": {}},
        {"alerts": {"alert": []}},
        {"alerts": None},
    ])
    def test_no_warnings(self, body):
        assert parse_warnings(body) == []

    def test_alert_field_must_be_list(self):
        with pytest.raises(ExternalServiceError):
            parse_warnings({"alerts": {"alert": "storm"}})

    def test_parse_current(self):
        conditions = parse_current(CURRENT_BODY)
        assert conditions.temperature_c == 21.5
        assert conditions.description == "Chuva moderada"
        assert conditions.humidity == 88
        assert conditions.icon_url == "https://cdn.weatherapi.com/64x64/day/302.png"

    def test_parse_current_requires_block(self):
        with pytest.raises(ExternalServiceError):
            parse_current({"location": {}})


# ═══════════════════════════════════════════════════════════════════════════
# HTTP behaviour
# ═══════════════════════════════════════════════════════════════════════════

class TestWeatherService:

    def test_forecast_request_parameters(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=FORECAST_BODY)

        warnings = asyncio.run(_service(handler).fetch_official_warnings())

        assert len(warnings) == 2
        request = seen[0]
        assert request.url.path == "/v1/forecast.json"
        params = request.url.params
        assert params["key"] == "k123"
        assert params["q"] == "Santa Isabel,Sao Paulo,Brazil"
        assert params["days"] == "1"
        assert params["alerts"] == "yes"
        assert params["aqi"] == "no"

    def test_current_request(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=CURRENT_BODY)

        conditions = asyncio.run(_service(handler).fetch_current_conditions())
        assert conditions.description == "Chuva moderada"
        assert seen[0].url.path == "/v1/current.json"

    def test_missing_key_raises_before_any_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=FORECAST_BODY)

        service = _service(handler, api_key="")
        assert not service.is_configured
        with pytest.raises(WeatherAPIKeyMissing):
            asyncio.run(service.fetch_official_warnings())
        assert calls == []

    def test_http_error_mapped(self):
        service = _service(lambda r: httpx.Response(500, text="oops"))
        with pytest.raises(ExternalServiceError) as exc_info:
            asyncio.run(service.fetch_official_warnings())
        assert exc_info.value.details["status_code"] == 500
        assert exc_info.value.status_code == 502

    def test_transport_error_mapped(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ExternalServiceError):
            asyncio.run(_service(handler).fetch_official_warnings())

    def test_invalid_json_mapped(self):
        service = _service(lambda r: httpx.Response(200, text="not json"))
        with pytest.raises(ExternalServiceError) as exc_info:
            asyncio.run(service.fetch_official_warnings())
        assert "invalid JSON" in exc_info.value.message

    def test_non_object_body_rejected(self):
        service = _service(lambda r: httpx.Response(200, json=[1, 2, 3]))
        with pytest.raises(ExternalServiceError):
            asyncio.run(service.fetch_current_conditions())


class TestLogCurrentConditions:

    def test_skips_without_key(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=CURRENT_BODY)

        asyncio.run(log_current_conditions(_service(handler, api_key="")))
        assert calls == []

    def test_logs_conditions(self, caplog):
        service = _service(lambda r: httpx.Response(200, json=CURRENT_BODY))
        with caplog.at_level(logging.INFO, logger="backend.app.ingestion.weather_service"):
            asyncio.run(log_current_conditions(service))
        assert "Chuva moderada" in caplog.text
        assert "21.5" in caplog.text
