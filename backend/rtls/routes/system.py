# rtls/routes/system.py
# ------------------------------------------------------------
# System settings and dashboard aggregates.
# ------------------------------------------------------------

from fastapi import APIRouter, Depends

from ..deps import get_service
from ..models import SystemSettingsUpdate, to_json
from ..service import RTLSService

router = APIRouter(tags=["system"])


@router.get("/api/settings")
def get_settings(svc: RTLSService = Depends(get_service)):
    return to_json(svc.get_system_settings())


@router.patch("/api/settings")
def update_settings(body: SystemSettingsUpdate, svc: RTLSService = Depends(get_service)):
    return to_json(svc.update_system_settings(body))


@router.get("/api/stats")
def system_stats(svc: RTLSService = Depends(get_service)):
    """
    Counts by status, alert counts, average temperature.
    """
    return to_json(svc.system_stats())


@router.get("/api/analytics")
def analytics(svc: RTLSService = Depends(get_service)):
    return to_json(svc.analytics())
