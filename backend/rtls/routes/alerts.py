# rtls/routes/alerts.py
# ------------------------------------------------------------
# Alerts API
#
# Alerts are listed newest first. Lifecycle:
#   unread_active -> read_active -> resolved
# Resolving twice is a no-op (200 with the unchanged alert).
# ------------------------------------------------------------

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional

from ..deps import get_service
from ..models import to_json
from ..service import RTLSService

router = APIRouter(tags=["alerts"])


@router.get("/api/alerts")
def list_alerts(
    severity: Optional[str] = Query(None, pattern="^(low|medium|high|critical)$"),
    status: Optional[str] = Query(None, pattern="^(active|resolved)$"),
    device_id: Optional[str] = None,
    type: Optional[str] = Query(None, pattern="^(temperature|offline|battery|geofence)$"),
    limit: int = Query(50, ge=1, le=300),
    svc: RTLSService = Depends(get_service),
):
    """
    List alerts (newest first) with optional filters.
    """
    items = svc.list_alerts(
        severity=severity,
        status=status,
        device_id=device_id,
        type=type,
        limit=limit,
    )
    return {"items": [to_json(a) for a in items]}


@router.get("/api/alerts/recent")
def recent_alerts(limit: Optional[int] = Query(None, ge=1, le=50), svc: RTLSService = Depends(get_service)):
    """
    Active alerts for the dashboard widget.
    """
    return {"items": [to_json(a) for a in svc.recent_alerts(limit)]}


@router.post("/api/alerts/read-all")
def mark_all_read(svc: RTLSService = Depends(get_service)):
    return {"ok": True, "updated": svc.mark_all_alerts_read()}


@router.post("/api/alerts/purge")
def purge_alerts(days: Optional[int] = Query(None, ge=1), svc: RTLSService = Depends(get_service)):
    """
    Drop resolved alerts older than `days` (default: alertRetention).
    """
    return {"ok": True, "purged": svc.purge_alerts(days)}


@router.get("/api/alerts/{alert_id}")
def get_alert(alert_id: str, svc: RTLSService = Depends(get_service)):
    return to_json(svc.get_alert(alert_id))


@router.post("/api/alerts/{alert_id}/read")
def mark_read(alert_id: str, svc: RTLSService = Depends(get_service)):
    return to_json(svc.mark_alert_read(alert_id))


@router.post("/api/alerts/{alert_id}/resolve")
def resolve_alert(alert_id: str, svc: RTLSService = Depends(get_service)):
    return to_json(svc.resolve_alert(alert_id))


@router.delete("/api/alerts/{alert_id}")
def delete_alert(alert_id: str, svc: RTLSService = Depends(get_service)):
    if not svc.delete_alert(alert_id):
        raise HTTPException(status_code=404, detail=f"alert '{alert_id}' not found")
    return {"ok": True}
