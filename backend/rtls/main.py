# rtls/main.py
# ------------------------------------------------------------
# FastAPI entrypoint for the RTLS backend.
#
# Responsibilities:
# - App initialization & middleware
# - Error mapping (NotFound -> 404, Validation -> 422)
# - Route registration
# - Startup bootstrapping (demo fleet, SSE feed subscription)
# - Background telemetry simulator
# ------------------------------------------------------------

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from .config import settings
from .deps import get_service
from .errors import NotFoundError, ValidationError
from .feed import UpdateFeed
from .generators import bootstrap_fleet
from .logging_setup import configure_logging
from .redis_client import get_redis
from .routes import devices, geofences, alerts, system, stream, health, admin
from .simulator import TelemetrySimulator

configure_logging(settings.log_level, settings.log_json)
logger = structlog.get_logger(__name__)


# ------------------------------------------------------------
# FastAPI application instance
# ------------------------------------------------------------
app = FastAPI(
    title="RTLS Console API",
    version="0.1.0",
    description="Device status, geofence containment and alerting for RTLS sensors",
)


# ------------------------------------------------------------
# CORS configuration
# Allows the desktop/mobile dashboards to connect
# ------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------------------------------------------
# Error mapping
# ------------------------------------------------------------
@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(
        status_code=404,
        content={"ok": False, "error": str(exc), "kind": exc.kind, "id": exc.entity_id},
    )


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=422,
        content={"ok": False, "error": str(exc), "field": exc.field},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled_exception", method=request.method, path=request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "Internal server error", "path": request.url.path},
    )


# ------------------------------------------------------------
# API routes
# ------------------------------------------------------------
app.include_router(devices.router)
app.include_router(geofences.router)
app.include_router(alerts.router)
app.include_router(system.router)
app.include_router(stream.router)
app.include_router(health.router)
app.include_router(admin.router)


simulator = None


# ------------------------------------------------------------
# Application lifecycle hooks
# ------------------------------------------------------------
@app.on_event("startup")
async def startup():
    """
    On startup:
    1. Seed the demo fleet (only if the registry is empty).
    2. Subscribe the Redis SSE feed to service updates.
    3. Start the periodic loop (telemetry generation only if enabled).
    """
    global simulator
    svc = get_service()

    if settings.seed_demo_fleet:
        seeded = bootstrap_fleet(svc)
        logger.info("demo_fleet_seeded", **seeded)

    feed = UpdateFeed(get_redis(), backlog=settings.updates_backlog)
    svc.on_data_updated(feed)
    svc.alerts.on_alert_raised(feed.on_alert)

    # static mode (generators off): state only moves through the API,
    # the loop still runs staleness, retention and feed publishing
    simulator = TelemetrySimulator(svc, generate=settings.generators_enabled)
    simulator.start()


@app.on_event("shutdown")
async def shutdown():
    global simulator
    if simulator is not None:
        await simulator.stop()
        simulator = None
