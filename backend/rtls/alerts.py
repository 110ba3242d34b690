# rtls/alerts.py
# ------------------------------------------------------------
# Alert engine
#
# Owns Alert records. Reads devices/geofences, never writes
# them. Alerts are kept newest first.
#
# Raising policy (driven by evaluator transitions):
# - entry into critical        -> temperature / critical
# - entry into offline         -> offline     / high
# - battery crossing below min -> battery     / medium
# - geofence exit/entry (flag) -> geofence    / high
#
# At most one active alert per (device_id, type): while one is
# unresolved, further qualifying transitions are suppressed.
# ------------------------------------------------------------

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Mapping, Optional

import structlog

from .errors import NotFoundError
from .evaluator import Evaluation
from .models import Alert, Device, Geofence, utcnow

logger = structlog.get_logger(__name__)

AlertListener = Callable[[Alert], None]


# -------------------------------
# Message templates
# -------------------------------
MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "temperature": "Critical temperature detected: {value} (threshold: {threshold})",
        "offline": "Device offline, no telemetry for {minutes} min",
        "offline_marked": "Device marked offline",
        "battery": "Low battery level ({level}%)",
        "geofence_exit": "Device left safety zone: {zones}",
        "geofence_entry": "Device entered zone: {zones}",
    },
    "fr": {
        "temperature": "Température critique détectée: {value} (seuil: {threshold})",
        "offline": "Périphérique hors ligne depuis {minutes} minutes",
        "offline_marked": "Périphérique mis hors ligne",
        "battery": "Niveau de batterie faible ({level}%)",
        "geofence_exit": "Périphérique sorti de la zone de sécurité: {zones}",
        "geofence_entry": "Périphérique entré dans la zone: {zones}",
    },
}


def format_temperature(celsius: float, unit: str = "celsius") -> str:
    if unit == "fahrenheit":
        return f"{celsius * 9 / 5 + 32:.1f}°F"
    return f"{celsius:.1f}°C"


class AlertEngine:
    def __init__(
        self,
        *,
        low_battery_threshold: int = 20,
        language: str = "en",
        temperature_unit: str = "celsius",
    ) -> None:
        self.low_battery_threshold = low_battery_threshold
        self.language = language
        self.temperature_unit = temperature_unit

        self._alerts: List[Alert] = []
        self._listeners: List[AlertListener] = []

    def __len__(self) -> int:
        return len(self._alerts)

    # -------------------------------
    # Listeners (notification delivery)
    # -------------------------------
    def on_alert_raised(self, listener: AlertListener) -> None:
        self._listeners.append(listener)

    def _notify(self, alert: Alert) -> None:
        for listener in self._listeners:
            try:
                listener(alert)
            except Exception:
                logger.exception("alert_listener_failed", alert_id=alert.id)

    def _msg(self, key: str, **kw) -> str:
        table = MESSAGES.get(self.language, MESSAGES["en"])
        return table[key].format(**kw)

    # -------------------------------
    # Raising
    # -------------------------------
    def raise_alert(
        self,
        device: Device,
        type: str,
        severity: str,
        message: str,
        *,
        zone: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Alert:
        """
        Unconditionally record a new alert (newest first).
        """
        alert = Alert(
            device_id=device.id,
            device_name=device.name,
            type=type,
            severity=severity,
            message=message,
            timestamp=now or utcnow(),
            zone=zone if zone is not None else device.zone,
        )
        self._alerts.insert(0, alert)

        logger.info(
            "alert_raised",
            alert_id=alert.id,
            device_id=device.id,
            type=type,
            severity=severity,
        )
        self._notify(alert)
        return alert

    def active_for(self, device_id: str, type: str) -> Optional[Alert]:
        for a in self._alerts:
            if a.device_id == device_id and a.type == type and a.state != "resolved":
                return a
        return None

    def _raise_once(self, device: Device, type: str, severity: str, message: str, **kw) -> Optional[Alert]:
        if self.active_for(device.id, type) is not None:
            logger.debug("alert_suppressed", device_id=device.id, type=type)
            return None
        return self.raise_alert(device, type, severity, message, **kw)

    def apply(
        self,
        device: Device,
        evaluation: Evaluation,
        *,
        geofences: Mapping[str, Geofence],
        prior_battery: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[Alert]:
        """
        Turn one evaluation into zero or more alerts.

        `device` is the post-evaluation snapshot; `prior_battery` is the
        battery level before the reading that produced it.
        """
        now = now or utcnow()
        raised: List[Alert] = []

        def _keep(alert: Optional[Alert]) -> None:
            if alert is not None:
                raised.append(alert)

        if evaluation.entered_status("critical"):
            _keep(self._raise_once(
                device, "temperature", "critical",
                self._msg(
                    "temperature",
                    value=format_temperature(device.temperature, self.temperature_unit),
                    threshold=format_temperature(device.temperature_threshold, self.temperature_unit),
                ),
                now=now,
            ))

        if evaluation.entered_status("offline"):
            if evaluation.stale:
                minutes = max(0, int((now - device.last_update).total_seconds() // 60))
                message = self._msg("offline", minutes=minutes)
            else:
                message = self._msg("offline_marked")
            _keep(self._raise_once(device, "offline", "high", message, now=now))

        if (
            prior_battery is not None
            and prior_battery >= self.low_battery_threshold > device.battery_level
        ):
            _keep(self._raise_once(
                device, "battery", "medium",
                self._msg("battery", level=device.battery_level),
                now=now,
            ))

        _keep(self._geofence_alert(device, evaluation, geofences, now))
        return raised

    def _geofence_alert(
        self,
        device: Device,
        evaluation: Evaluation,
        geofences: Mapping[str, Geofence],
        now: datetime,
    ) -> Optional[Alert]:
        # one alert covers every geofence that qualified in this evaluation
        exits = [
            geofences[gid] for gid in sorted(evaluation.exited)
            if gid in geofences and geofences[gid].alert_on_exit
        ]
        entries = [
            geofences[gid] for gid in sorted(evaluation.entered)
            if gid in geofences and geofences[gid].alert_on_entry
        ]
        if not exits and not entries:
            return None

        parts = []
        if exits:
            parts.append(self._msg("geofence_exit", zones=", ".join(g.name for g in exits)))
        if entries:
            parts.append(self._msg("geofence_entry", zones=", ".join(g.name for g in entries)))

        zone = device.zone or (exits or entries)[0].name
        return self._raise_once(device, "geofence", "high", "; ".join(parts), zone=zone, now=now)

    # -------------------------------
    # Queries
    # -------------------------------
    def get(self, alert_id: str) -> Alert:
        for a in self._alerts:
            if a.id == alert_id:
                return a
        raise NotFoundError("alert", alert_id)

    def list(
        self,
        *,
        severity: Optional[str] = None,
        status: Optional[str] = None,
        device_id: Optional[str] = None,
        type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Alert]:
        out = [
            a for a in self._alerts
            if (severity is None or a.severity == severity)
            and (status is None or a.status == status)
            and (device_id is None or a.device_id == device_id)
            and (type is None or a.type == type)
        ]
        out.sort(key=lambda a: a.timestamp, reverse=True)
        if limit is not None:
            out = out[:limit]
        return out

    # -------------------------------
    # Lifecycle
    # -------------------------------
    def _replace(self, alert: Alert) -> Alert:
        for i, a in enumerate(self._alerts):
            if a.id == alert.id:
                self._alerts[i] = alert
                return alert
        raise NotFoundError("alert", alert.id)

    def mark_read(self, alert_id: str) -> Alert:
        alert = self.get(alert_id)
        if alert.state != "unread_active":
            return alert
        return self._replace(alert.model_copy(update={"state": "read_active"}))

    def mark_all_read(self) -> int:
        n = 0
        for i, a in enumerate(self._alerts):
            if a.state == "unread_active":
                self._alerts[i] = a.model_copy(update={"state": "read_active"})
                n += 1
        return n

    def resolve(self, alert_id: str, *, now: Optional[datetime] = None) -> Alert:
        """
        Resolve an alert. Resolving an already-resolved alert is a no-op.
        """
        alert = self.get(alert_id)
        if alert.state == "resolved":
            return alert
        logger.info("alert_resolved", alert_id=alert_id, device_id=alert.device_id)
        return self._replace(
            alert.model_copy(update={"state": "resolved", "resolved_at": now or utcnow()})
        )

    def delete(self, alert_id: str) -> bool:
        for i, a in enumerate(self._alerts):
            if a.id == alert_id:
                del self._alerts[i]
                return True
        return False

    def purge_resolved_older_than(self, days: int, *, now: Optional[datetime] = None) -> int:
        """
        Drop resolved alerts created more than `days` days ago.
        Active alerts are never purged.
        """
        cutoff = (now or utcnow()) - timedelta(days=days)
        before = len(self._alerts)
        self._alerts = [
            a for a in self._alerts
            if not (a.state == "resolved" and a.timestamp < cutoff)
        ]
        purged = before - len(self._alerts)
        if purged:
            logger.info("alerts_purged", count=purged, retention_days=days)
        return purged

    def clear(self) -> None:
        self._alerts.clear()
