# rtls/deps.py
# ------------------------------------------------------------
# Process-wide service instance, injected into routes with
# Depends(get_service). Tests swap it via dependency_overrides.
# ------------------------------------------------------------

from typing import Optional

from .notifications import AlertNotifier
from .service import RTLSService

_service: Optional[RTLSService] = None


def build_service() -> RTLSService:
    svc = RTLSService()
    svc.alerts.on_alert_raised(AlertNotifier(svc))
    return svc


def get_service() -> RTLSService:
    global _service
    if _service is None:
        _service = build_service()
    return _service
