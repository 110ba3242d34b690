# rtls/routes/geofences.py
# ------------------------------------------------------------
# Geofences API
#
# Circular safety zones. Any change re-computes device
# containment (no zone alerts are raised for edits).
# ------------------------------------------------------------

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..deps import get_service
from ..models import GeofenceCreate, GeofenceUpdate, to_json
from ..service import RTLSService

router = APIRouter(tags=["geofences"])


class ActiveToggle(BaseModel):
    active: bool


@router.get("/api/geofences")
def list_geofences(active_only: bool = False, svc: RTLSService = Depends(get_service)):
    return {"items": [to_json(g) for g in svc.list_geofences(active_only=active_only)]}


@router.get("/api/geofences/{geofence_id}")
def get_geofence(geofence_id: str, svc: RTLSService = Depends(get_service)):
    return to_json(svc.get_geofence(geofence_id))


@router.post("/api/geofences", status_code=201)
def create_geofence(body: GeofenceCreate, svc: RTLSService = Depends(get_service)):
    return to_json(svc.create_geofence(body))


@router.patch("/api/geofences/{geofence_id}")
def update_geofence(geofence_id: str, body: GeofenceUpdate, svc: RTLSService = Depends(get_service)):
    return to_json(svc.update_geofence(geofence_id, body))


@router.post("/api/geofences/{geofence_id}/active")
def set_active(geofence_id: str, body: ActiveToggle, svc: RTLSService = Depends(get_service)):
    return to_json(svc.set_geofence_active(geofence_id, body.active))


@router.delete("/api/geofences/{geofence_id}")
def delete_geofence(geofence_id: str, svc: RTLSService = Depends(get_service)):
    if not svc.delete_geofence(geofence_id):
        raise HTTPException(status_code=404, detail=f"geofence '{geofence_id}' not found")
    return {"ok": True}
