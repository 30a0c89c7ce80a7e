"""
Route dependencies — services built once in the application lifespan and
kept on ``app.state``. Tests replace them with ``app.dependency_overrides``.
"""

from __future__ import annotations

from fastapi import Request

from backend.app.alerts.alert_service import AlertOrchestrator
from backend.app.contacts.directory import ContactDirectory
from backend.app.ingestion.weather_service import WeatherService


def get_orchestrator(request: Request) -> AlertOrchestrator:
    return request.app.state.orchestrator


def get_contact_directory(request: Request) -> ContactDirectory:
    return request.app.state.directory


def get_weather_service(request: Request) -> WeatherService:
    return request.app.state.weather
