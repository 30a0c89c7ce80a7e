"""
test_config.py — Tests for the settings defaults.

Run with:
    pytest tests/test_config.py -v
"""

from __future__ import annotations

from backend.app.core.config import Settings


class TestSettings:

    def test_defaults_run_in_simulation(self):
        s = Settings(_env_file=None)
        assert s.SMS_PROVIDER == "simulation"
        assert s.EMAIL_PROVIDER == "simulation"
        assert s.RATE_LIMIT_BACKEND == "memory"

    def test_schedule_defaults(self):
        s = Settings(_env_file=None)
        assert s.ALERT_CYCLE_INTERVAL_SECONDS == 3600
        assert s.CURRENT_WEATHER_INTERVAL_SECONDS == 900

    def test_email_sender_fallbacks(self):
        assert Settings(_env_file=None, EMAIL_FROM="a@x.com", SMTP_USER="b@x.com").email_sender == "a@x.com"
        assert Settings(_env_file=None, SMTP_USER="b@x.com").email_sender == "b@x.com"

    def test_no_server_bind_settings(self):
        # Host and port are given on the uvicorn command line
        assert "HOST" not in Settings.model_fields
        assert "PORT" not in Settings.model_fields
