"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --port 3000

The lifespan builds the alert services once, runs the first alert cycle
immediately and then every ALERT_CYCLE_INTERVAL_SECONDS, and logs the
current weather every CURRENT_WEATHER_INTERVAL_SECONDS.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from backend.app.core.cache import close_redis
from backend.app.core.config import settings
from backend.app.core.database import close_db, init_db
from backend.app.core.errors import register_error_handlers
from backend.app.core.health import HealthStatus, run_health_check
from backend.app.core.logging_config import get_logger, setup_logging
from backend.app.core.middleware import RequestLoggingMiddleware

# ── Services ──
from backend.app.alerts.alert_service import AlertOrchestrator
from backend.app.alerts.channels.email_alert import EmailSender
from backend.app.alerts.channels.sms_gateway import SmsGateway
from backend.app.alerts.rate_limiter import build_rate_limiter
from backend.app.alerts.scheduler import JobScheduler, PeriodicJob
from backend.app.contacts.directory import ContactDirectory
from backend.app.ingestion.weather_service import WeatherService, log_current_conditions

# ── API routers ──
from backend.app.api.v1.alerts import router as alert_router
from backend.app.api.v1.contacts import router as contact_router
from backend.app.api.v1.weather import router as weather_router

setup_logging()
logger = get_logger(__name__)


def build_scheduler(orchestrator: AlertOrchestrator, weather: WeatherService) -> JobScheduler:
    return JobScheduler([
        PeriodicJob(
            "alert-cycle",
            orchestrator.run_alert_cycle,
            settings.ALERT_CYCLE_INTERVAL_SECONDS,
            run_immediately=True,
        ),
        PeriodicJob(
            "current-weather",
            lambda: log_current_conditions(weather),
            settings.CURRENT_WEATHER_INTERVAL_SECONDS,
        ),
    ])


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build services, start scheduled jobs; tear everything down on exit."""
    logger.info(
        "🚀 Starting %s v%s [%s]",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
    )

    if settings.DATABASE_CREATE_TABLES:
        try:
            await init_db()
        except Exception:
            logger.exception("Could not create database tables; continuing")

    weather = WeatherService()
    directory = ContactDirectory()
    orchestrator = AlertOrchestrator(
        warning_source=weather,
        directory=directory,
        rate_limiter=build_rate_limiter(),
        sms=SmsGateway(),
        email=EmailSender(),
        location_name=settings.ALERT_LOCATION_NAME,
    )
    app.state.weather = weather
    app.state.directory = directory
    app.state.orchestrator = orchestrator

    scheduler = build_scheduler(orchestrator, weather)
    if settings.SCHEDULER_ENABLED:
        await scheduler.start()
    else:
        logger.warning("Scheduler disabled; alert cycles only run on demand")

    try:
        yield
    finally:
        await scheduler.stop()
        await orchestrator.close()
        await close_redis()
        await close_db()
        logger.info("Shutting down %s", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Municipal flood alert service: polls official weather warnings, "
        "notifies registered contacts by SMS and email with per-contact "
        "cooldowns, and serves current weather conditions."
    ),
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware stack (outermost first) ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

register_error_handlers(app)

app.include_router(alert_router)
app.include_router(contact_router)
app.include_router(weather_router)


@app.get("/", tags=["root"])
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "location": settings.ALERT_LOCATION_NAME,
        "docs": "/docs",
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Deep health probe — checks all subsystems."""
    report = await run_health_check()
    return report.to_dict()


@app.get("/health/live", tags=["health"])
async def liveness():
    return {"status": "alive"}


@app.get("/health/ready", tags=["health"])
async def readiness():
    report = await run_health_check()
    if report.status == HealthStatus.UNHEALTHY:
        return JSONResponse(status_code=503, content=report.to_dict())
    return report.to_dict()
