"""
Health check aggregation — deep health probe for all subsystems.

Checks:
    • Database connectivity (contact directory)
    • Redis connectivity (required only for the Redis rate-limit backend)
    • Weather source credential
    • Notification providers (simulation mode is reported as degraded)

Overall status is the worst component status.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from backend.app.core.cache import ping_redis
from backend.app.core.config import settings
from backend.app.core.database import ping_db

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


_start_time = time.monotonic()


async def check_database() -> ComponentHealth:
    comp = ComponentHealth(name="database")
    start = time.monotonic()
    try:
        await ping_db()
        comp.message = "SELECT 1 ok"
    except Exception as e:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = str(e)
    comp.details = {"url": settings.DATABASE_URL.split("@")[-1]}
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_redis() -> ComponentHealth:
    comp = ComponentHealth(name="redis")
    start = time.monotonic()
    required = settings.RATE_LIMIT_BACKEND == "redis"
    try:
        await ping_redis()
        comp.message = "PING ok"
    except Exception as e:
        # Without Redis only the weather cache is lost, unless it backs rate limiting
        comp.status = HealthStatus.UNHEALTHY if required else HealthStatus.DEGRADED
        comp.message = str(e)
    comp.details = {"required": required}
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_weather_source() -> ComponentHealth:
    comp = ComponentHealth(name="weather_source")
    if not settings.WEATHER_API_KEY:
        comp.status = HealthStatus.DEGRADED
        comp.message = "WEATHER_API_KEY missing; alert cycles are skipped"
    else:
        comp.message = "Credential configured"
    comp.details = {"query": settings.WEATHER_QUERY}
    return comp


async def check_notification_providers() -> ComponentHealth:
    comp = ComponentHealth(name="notification_providers")
    providers = {"sms": settings.SMS_PROVIDER, "email": settings.EMAIL_PROVIDER}
    simulated = [ch for ch, p in providers.items() if p == "simulation"]
    if simulated:
        comp.status = HealthStatus.DEGRADED
        comp.message = f"Simulation mode: {', '.join(simulated)}"
    else:
        comp.message = "All providers live"
    comp.details = providers
    return comp


async def run_health_check() -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    for check in (check_database, check_redis, check_weather_source,
                  check_notification_providers):
        report.components.append(await check())

    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED

    return report
