# rtls/routes/health.py
# ------------------------------------------------------------
# Health endpoint
#
# Purpose:
# - quick liveness check
# - counts for UI chips
# - Redis (SSE feed) dependency state
# ------------------------------------------------------------

from fastapi import APIRouter, Depends
from datetime import datetime, timezone
import time

import redis
import structlog

from ..deps import get_service
from ..feed import feed_position
from ..redis_client import get_redis
from ..service import RTLSService

logger = structlog.get_logger(__name__)
router = APIRouter(tags=["health"])


def _utc_now_iso():
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@router.get("/api/health")
def health(svc: RTLSService = Depends(get_service)):
    """
    Health status for the dashboard.

    Returns:
    - ok, utc, started_at, uptime_seconds
    - counts (devices, geofences, alerts)
    - redis (feed dependency state)
    - latency_ms (server-measured for this handler)
    """
    t0 = time.perf_counter()
    stats = svc.system_stats()

    counts = {
        "devices": stats.total_devices,
        "geofences": len(svc.list_geofences()),
        "alerts": stats.total_alerts,
        "active_alerts": stats.active_alerts,
    }

    try:
        r = get_redis()
        r.ping()
        redis_info = {"ok": True, "feed_seq": feed_position(r)}
    except redis.RedisError as exc:
        # keep ok true if the API is up; redis.ok reports the dependency
        logger.warning("redis_unavailable", error=str(exc))
        redis_info = {"ok": False}

    latency_ms = round((time.perf_counter() - t0) * 1000, 2)

    return {
        "ok": True,
        "utc": _utc_now_iso(),
        "started_at": svc.started_at.isoformat().replace("+00:00", "Z"),
        "uptime_seconds": stats.uptime_seconds,
        "counts": counts,
        "redis": redis_info,
        "latency_ms": latency_ms,
    }
