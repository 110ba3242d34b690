# rtls/notifications.py
# ------------------------------------------------------------
# Notification delivery for raised alerts.
#
# Push/desktop delivery belongs to the UI shells; the backend
# emits a structured "notification" log record per alert so an
# external notifier (or a log shipper) can pick it up.
# Honors enable_desktop_notifications / enable_sound_alerts.
# ------------------------------------------------------------

import structlog

from .models import Alert

logger = structlog.get_logger("rtls.notifications")

TITLES = {
    "en": {"critical": "Critical alert", "high": "Alert", "medium": "Warning", "low": "Notice"},
    "fr": {"critical": "Alerte critique", "high": "Alerte", "medium": "Avertissement", "low": "Information"},
}


class AlertNotifier:
    """
    Listener for AlertEngine.on_alert_raised.
    """

    def __init__(self, service) -> None:
        self.service = service
        self.sent = 0

    def __call__(self, alert: Alert) -> None:
        system = self.service.system
        if not system.enable_desktop_notifications:
            return

        titles = TITLES.get(system.language, TITLES["en"])
        logger.warning(
            "notification",
            title=titles[alert.severity],
            body=alert.message,
            device=alert.device_name,
            sound=system.enable_sound_alerts,
        )
        self.sent += 1
