# rtls/routes/admin.py
# ------------------------------------------------------------
# Admin controls
#
# - configuration export / import (devices, geofences, settings)
# - full report export (configuration + alerts + statistics)
# - reset: drop volatile state and re-seed the demo fleet
#
# Mutating operations take a short Redis lock to avoid concurrent
# "double fire" across workers, and broadcast an admin_notice on
# the SSE feed so all clients understand what happened.
# ------------------------------------------------------------

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from typing import Any, Dict
import hashlib
import time

from ..config import settings
from ..deps import get_service
from ..feed import clear_feed, push_update
from ..redis_client import get_redis
from ..service import RTLSService

router = APIRouter(tags=["admin"])

K_ADMIN_LOCK = "admin:lock"


def _actor_id(req: Request) -> str:
    # best-effort identity: IP + UA -> short hash
    ip = req.headers.get("x-forwarded-for") or (req.client.host if req.client else "unknown")
    ua = req.headers.get("user-agent", "")
    raw = f"{ip}|{ua}".encode("utf-8", errors="ignore")
    return hashlib.sha1(raw).hexdigest()[:6]


def _acquire_lock(r) -> bool:
    # SET key value NX EX <sec>
    return bool(r.set(K_ADMIN_LOCK, "1", nx=True, ex=settings.admin_lock_sec))


def _release_lock(r) -> None:
    r.delete(K_ADMIN_LOCK)


def _announce(r, kind: str, data: Dict, actor: str):
    payload = {
        "kind": kind,
        "actor": actor,
        "ts": int(time.time()),
        "data": data,
    }
    push_update(r, {"type": "admin_notice", "data": payload}, settings.updates_backlog)


@router.get("/api/admin/export")
def export_configuration(svc: RTLSService = Depends(get_service)):
    return svc.export_configuration()


@router.get("/api/admin/report")
def export_report(svc: RTLSService = Depends(get_service)):
    return svc.export_report()


@router.post("/api/admin/import")
def import_configuration(
    request: Request,
    body: Dict[str, Any] = Body(...),
    svc: RTLSService = Depends(get_service),
):
    r = get_redis()

    if not _acquire_lock(r):
        raise HTTPException(status_code=409, detail="Admin operation busy, try again.")
    try:
        counts = svc.import_configuration(body)
        _announce(r, "configuration_imported", counts, _actor_id(request))
    finally:
        _release_lock(r)

    return {"ok": True, "imported": counts}


@router.post("/api/admin/reset")
def reset_simulation(request: Request, svc: RTLSService = Depends(get_service)):
    r = get_redis()

    if not _acquire_lock(r):
        raise HTTPException(status_code=409, detail="Admin operation busy, try again.")
    try:
        deleted = svc.reset(seed=settings.seed_demo_fleet)
        clear_feed(r)
        _announce(r, "simulation_reset", {"reseeded": settings.seed_demo_fleet}, _actor_id(request))
    finally:
        _release_lock(r)

    return {"ok": True, "deleted": deleted}
