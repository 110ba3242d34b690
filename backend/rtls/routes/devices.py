# rtls/routes/devices.py
# ------------------------------------------------------------
# Devices API
#
# CRUD on the device registry, telemetry ingestion and the
# offline/online toggle. Every mutation is evaluated (status,
# containment) before the response is built.
# ------------------------------------------------------------

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional

from ..deps import get_service
from ..models import DeviceCreate, DeviceUpdate, TelemetryReading, to_json
from ..service import RTLSService

router = APIRouter(tags=["devices"])


@router.get("/api/devices")
def list_devices(
    status: Optional[str] = Query(None, pattern="^(online|warning|critical|offline)$"),
    zone: Optional[str] = None,
    svc: RTLSService = Depends(get_service),
):
    """
    List devices in registration order, optionally filtered.
    """
    return {"items": [to_json(d) for d in svc.list_devices(status=status, zone=zone)]}


@router.get("/api/devices/{device_id}")
def get_device(device_id: str, svc: RTLSService = Depends(get_service)):
    return to_json(svc.get_device(device_id))


@router.post("/api/devices", status_code=201)
def create_device(body: DeviceCreate, svc: RTLSService = Depends(get_service)):
    return to_json(svc.create_device(body))


@router.patch("/api/devices/{device_id}")
def update_device(device_id: str, body: DeviceUpdate, svc: RTLSService = Depends(get_service)):
    return to_json(svc.update_device(device_id, body))


@router.delete("/api/devices/{device_id}")
def delete_device(device_id: str, svc: RTLSService = Depends(get_service)):
    if not svc.delete_device(device_id):
        raise HTTPException(status_code=404, detail=f"device '{device_id}' not found")
    return {"ok": True}


@router.post("/api/devices/{device_id}/telemetry")
def report_telemetry(device_id: str, body: TelemetryReading, svc: RTLSService = Depends(get_service)):
    """
    Ingestion endpoint for real sensor adapters.
    """
    return to_json(svc.report_telemetry(device_id, body))


@router.post("/api/devices/{device_id}/offline")
def mark_offline(device_id: str, svc: RTLSService = Depends(get_service)):
    return to_json(svc.set_device_online(device_id, False))


@router.post("/api/devices/{device_id}/online")
def mark_online(device_id: str, svc: RTLSService = Depends(get_service)):
    return to_json(svc.set_device_online(device_id, True))
