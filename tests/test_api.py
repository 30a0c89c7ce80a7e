"""
test_api.py — HTTP surface tests with FastAPI's TestClient.

Services are swapped in through ``app.dependency_overrides``; the
lifespan (scheduler, database, Redis) is never started.

Run with:
    pytest tests/test_api.py -v
"""

from __future__ import annotations

from typing import List
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from backend.app.alerts.alert_service import AlertOrchestrator
from backend.app.alerts.models import Recipient, WarningRecord
from backend.app.alerts.rate_limiter import RateLimiter
from backend.app.api import deps
from backend.app.core.errors import ConflictError, ExternalServiceError, NotFoundError
from backend.app.ingestion.weather_service import CurrentConditions, WeatherAPIKeyMissing
from backend.app.main import app
from tests.fakes import FakeClock, FakeDirectory, FakeWarningSource, RecordingEmail, RecordingSms


class FakeContactDirectory(FakeDirectory):
    def __init__(self):
        super().__init__([])
        self.next_id = 1

    async def register(self, name: str, phone: str, email: str) -> Recipient:
        for r in self.recipients:
            if r.email == email:
                raise ConflictError("Contact", field="email")
            if r.phone == phone:
                raise ConflictError("Contact", field="phone")
        recipient = Recipient(str(self.next_id), name, phone, email)
        self.next_id += 1
        self.recipients.append(recipient)
        return recipient

    async def unregister(self, recipient_id: str) -> None:
        for r in self.recipients:
            if r.recipient_id == recipient_id:
                self.recipients.remove(r)
                return
        raise NotFoundError("Contact", recipient_id=recipient_id)


class FakeWeather:
    def __init__(self, conditions=None, exc=None):
        self.conditions = conditions
        self.exc = exc
        self.calls = 0

    async def fetch_current_conditions(self) -> CurrentConditions:
        self.calls += 1
        if self.exc is not None:
            raise self.exc
        return self.conditions


CONDITIONS = CurrentConditions(
    temperature_c=19.0,
    description="Chuva forte",
    humidity=95,
    wind_kph=20.5,
    feels_like_c=18.0,
    icon_url="https://cdn.weatherapi.com/64x64/day/308.png",
)


@pytest.fixture
def services():
    directory = FakeContactDirectory()
    source = FakeWarningSource([WarningRecord("H1", "D1")])
    sms = RecordingSms()
    email = RecordingEmail()
    orchestrator = AlertOrchestrator(
        warning_source=source,
        directory=directory,
        rate_limiter=RateLimiter(clock=FakeClock()),
        sms=sms,
        email=email,
        location_name="Santa Isabel",
    )
    weather = FakeWeather(CONDITIONS)

    app.dependency_overrides[deps.get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[deps.get_contact_directory] = lambda: directory
    app.dependency_overrides[deps.get_weather_service] = lambda: weather
    yield {
        "directory": directory,
        "sms": sms,
        "email": email,
        "orchestrator": orchestrator,
        "weather": weather,
    }
    app.dependency_overrides.clear()


@pytest.fixture
def client(services) -> TestClient:
    return TestClient(app)


@pytest.fixture
def no_cache(monkeypatch):
    store: List = []
    monkeypatch.setattr("backend.app.api.v1.weather.cache_get", AsyncMock(return_value=None))
    setter = AsyncMock(side_effect=lambda *a, **kw: store.append((a, kw)) or True)
    monkeypatch.setattr("backend.app.api.v1.weather.cache_set", setter)
    return store


REGISTRATION = {
    "name": "  Maria Silva ",
    "phone": "(11) 98765-4321",
    "email": " Maria@Example.COM ",
    "terms_accepted": True,
}


# ═══════════════════════════════════════════════════════════════════════════
# Contacts
# ═══════════════════════════════════════════════════════════════════════════

class TestContacts:

    def test_register_normalizes_and_welcomes(self, client, services):
        resp = client.post("/api/v1/contacts", json=REGISTRATION)

        assert resp.status_code == 201
        body = resp.json()
        assert body["contact"] == {
            "recipient_id": "1",
            "name": "Maria Silva",
            "phone": "11987654321",
            "email": "maria@example.com",
        }
        assert [n["channel"] for n in body["notifications"]] == ["email", "sms"]
        assert services["sms"].sent[0][0] == "+5511987654321"
        assert services["email"].sent[0][0] == "maria@example.com"

    def test_duplicate_email_conflicts(self, client):
        client.post("/api/v1/contacts", json=REGISTRATION)
        resp = client.post("/api/v1/contacts", json={**REGISTRATION, "phone": "11900000000"})

        assert resp.status_code == 409
        error = resp.json()["error"]
        assert error["code"] == "CONFLICT"
        assert error["details"]["field"] == "email"

    def test_duplicate_phone_conflicts(self, client):
        client.post("/api/v1/contacts", json=REGISTRATION)
        resp = client.post("/api/v1/contacts", json={**REGISTRATION, "email": "other@example.com"})
        assert resp.status_code == 409
        assert resp.json()["error"]["details"]["field"] == "phone"

    @pytest.mark.parametrize("override", [
        {"name": "Al"},
        {"phone": "98765-4321"},
        {"email": "not-an-email"},
        {"terms_accepted": False},
    ])
    def test_invalid_registration(self, client, services, override):
        resp = client.post("/api/v1/contacts", json={**REGISTRATION, **override})
        assert resp.status_code == 422
        assert services["directory"].recipients == []

    def test_welcome_sms_rate_limited_on_quick_reregistration(self, client, services):
        client.post("/api/v1/contacts", json=REGISTRATION)
        services["directory"].recipients.clear()
        resp = client.post("/api/v1/contacts", json=REGISTRATION)

        assert resp.status_code == 201
        assert resp.json()["notifications"][-1]["status"] == "rate_limited"
        assert len(services["sms"].sent) == 1

    def test_unregister_removes_contact(self, client, services):
        contact_id = client.post("/api/v1/contacts", json=REGISTRATION).json()["contact"]["recipient_id"]

        resp = client.delete(f"/api/v1/contacts/{contact_id}")

        assert resp.status_code == 200
        assert resp.json() == {"recipient_id": contact_id, "removed": True}
        assert services["directory"].recipients == []

    def test_unregister_unknown_contact_is_404(self, client):
        resp = client.delete("/api/v1/contacts/999")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    def test_unregistered_contact_gets_no_alerts(self, client, services):
        contact_id = client.post("/api/v1/contacts", json=REGISTRATION).json()["contact"]["recipient_id"]
        sms_before = len(services["sms"].sent)
        emails_before = len(services["email"].sent)

        client.delete(f"/api/v1/contacts/{contact_id}")
        report = client.post("/api/v1/alerts/run").json()

        assert report["outcome"] == "completed"
        assert report["recipient_count"] == 0
        assert len(services["sms"].sent) == sms_before
        assert len(services["email"].sent) == emails_before


# ═══════════════════════════════════════════════════════════════════════════
# Alerts
# ═══════════════════════════════════════════════════════════════════════════

class TestAlerts:

    def test_last_report_404_before_any_cycle(self, client):
        resp = client.get("/api/v1/alerts/last-report")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    def test_run_cycle_and_fetch_report(self, client, services):
        services["directory"].recipients.append(
            Recipient("9", "Ana", "11911112222", "ana@example.com")
        )

        run = client.post("/api/v1/alerts/run")
        assert run.status_code == 200
        report = run.json()
        assert report["outcome"] == "completed"
        assert report["by_channel"]["sms"]["delivered"] == 1
        assert report["by_channel"]["email"]["delivered"] == 1

        last = client.get("/api/v1/alerts/last-report")
        assert last.status_code == 200
        assert last.json()["cycle_id"] == report["cycle_id"]

    def test_second_run_rate_limits_sms(self, client, services):
        services["directory"].recipients.append(
            Recipient("9", "Ana", "11911112222", "ana@example.com")
        )
        client.post("/api/v1/alerts/run")
        report = client.post("/api/v1/alerts/run").json()

        assert report["by_channel"]["sms"]["rate_limited"] == 1
        assert report["by_channel"]["email"]["delivered"] == 1

    def test_cooldowns(self, client):
        resp = client.get("/api/v1/alerts/cooldowns")
        assert resp.status_code == 200
        windows = {c["channel_class"]: c["window_seconds"] for c in resp.json()}
        assert windows == {"alerta": 18000, "cadastro": 3600}


# ═══════════════════════════════════════════════════════════════════════════
# Weather
# ═══════════════════════════════════════════════════════════════════════════

class TestWeather:

    def test_current_weather_fetched_and_cached(self, client, services, no_cache):
        resp = client.get("/api/v1/weather/current")

        assert resp.status_code == 200
        body = resp.json()
        assert body["description"] == "Chuva forte"
        assert body["cached"] is False
        assert body["location"] == "Santa Isabel"
        (args, kwargs), = no_cache
        assert args[0] == "weather:current"
        assert args[1]["temperature_c"] == 19.0

    def test_cache_hit_skips_upstream(self, client, services, monkeypatch):
        monkeypatch.setattr(
            "backend.app.api.v1.weather.cache_get",
            AsyncMock(return_value=CONDITIONS.to_dict()),
        )
        resp = client.get("/api/v1/weather/current")

        assert resp.status_code == 200
        assert resp.json()["cached"] is True
        assert services["weather"].calls == 0

    def test_missing_key_is_503(self, client, services, no_cache):
        services["weather"].exc = WeatherAPIKeyMissing()
        resp = client.get("/api/v1/weather/current")
        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "NOT_CONFIGURED"

    def test_upstream_failure_is_502(self, client, services, no_cache):
        services["weather"].exc = ExternalServiceError("weatherapi", "HTTP 500")
        resp = client.get("/api/v1/weather/current")
        assert resp.status_code == 502
        assert no_cache == []


# ═══════════════════════════════════════════════════════════════════════════
# Root, health, middleware
# ═══════════════════════════════════════════════════════════════════════════

class TestMisc:

    def test_root(self, client):
        assert client.get("/").json()["location"] == "Santa Isabel"

    def test_liveness(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_request_id_generated(self, client):
        resp = client.get("/api/v1/alerts/cooldowns")
        assert resp.headers["X-Request-ID"]
        assert resp.headers["X-Process-Time"].endswith("ms")

    def test_request_id_echoed(self, client):
        resp = client.get("/api/v1/alerts/cooldowns", headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"
