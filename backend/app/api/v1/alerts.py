"""
FastAPI route: official-warning alert cycle.

Provides endpoints to:
    POST /api/v1/alerts/run           — run an alert cycle now
    GET  /api/v1/alerts/last-report   — report of the latest cycle
    GET  /api/v1/alerts/cooldowns     — fixed cooldown windows per class
"""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from backend.app.alerts.alert_service import AlertOrchestrator
from backend.app.alerts.models import ChannelClass
from backend.app.alerts.rate_limiter import COOLDOWN_WINDOWS
from backend.app.api.deps import get_orchestrator
from backend.app.api.schemas import CooldownOut
from backend.app.core.errors import NotFoundError

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])

_COOLDOWN_USES = {
    ChannelClass.ALERTA: "Official warning SMS",
    ChannelClass.CADASTRO: "Registration welcome SMS",
}


@router.post("/run")
async def run_cycle(
    orchestrator: AlertOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """
    Run one alert cycle immediately and return its report.

    When a scheduled cycle is still running the request does not start a
    second one; the report outcome is ``overlap_skipped``.
    """
    report = await orchestrator.run_alert_cycle()
    return report.to_dict()


@router.get("/last-report")
async def last_report(
    orchestrator: AlertOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    if orchestrator.last_report is None:
        raise NotFoundError("Alert cycle report")
    return orchestrator.last_report.to_dict()


@router.get("/cooldowns", response_model=List[CooldownOut])
async def cooldowns() -> List[CooldownOut]:
    return [
        CooldownOut(
            channel_class=cls.value,
            window_seconds=int(window.total_seconds()),
            description=_COOLDOWN_USES[cls],
        )
        for cls, window in COOLDOWN_WINDOWS.items()
    ]
