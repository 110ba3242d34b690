# rtls/service.py
# ------------------------------------------------------------
# RTLSService: the request/response facade consumed by the API
# routes and the simulator.
#
# Responsibilities:
# - own the registries, the alert engine and runtime settings
# - run evaluator + alert engine after every device mutation
# - telemetry ingestion (report_telemetry), also used by the
#   simulator
# - read-side aggregation and {devices, alerts} snapshots
# - subscriber fan-out (on_data_updated)
#
# Concurrency: route handlers run in the threadpool while the
# simulator ticks on the event loop, so all state access goes
# through one re-entrant lock.
# ------------------------------------------------------------

from __future__ import annotations

import dataclasses
import threading
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional, Union

import pydantic
import structlog

from . import stats
from .alerts import AlertEngine
from .config import Settings, settings as default_settings
from .errors import ValidationError
from .evaluator import evaluate
from .generators import bootstrap_fleet
from .models import (
    Alert,
    Analytics,
    Device,
    DeviceCreate,
    DeviceUpdate,
    Geofence,
    GeofenceCreate,
    GeofenceUpdate,
    SystemSettings,
    SystemSettingsUpdate,
    SystemStats,
    TelemetryReading,
    TemperaturePoint,
    to_json,
    utcnow,
)
from .registry import DeviceRegistry, GeofenceRegistry

logger = structlog.get_logger(__name__)

Snapshot = Dict[str, Any]
DataListener = Callable[[Snapshot], None]


def _settings_from(config: Settings) -> SystemSettings:
    return SystemSettings(
        temperature_unit=config.temperature_unit,
        default_temperature_threshold=config.default_temperature_threshold,
        update_interval=config.update_interval_sec,
        alert_retention=config.alert_retention_days,
        enable_sound_alerts=config.enable_sound_alerts,
        enable_desktop_notifications=config.enable_desktop_notifications,
        map_provider=config.map_provider,
        language=config.language,
    )


class RTLSService:
    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config or default_settings
        self.clock = clock
        self.lock = threading.RLock()

        self.devices = DeviceRegistry()
        self.geofences = GeofenceRegistry()
        self.system = _settings_from(self.config)
        self.alerts = AlertEngine(
            low_battery_threshold=self.config.low_battery_threshold,
            language=self.system.language,
            temperature_unit=self.system.temperature_unit,
        )

        self.started_at = self.clock()
        self._history: Dict[str, Deque[TemperaturePoint]] = {}
        self._listeners: List[DataListener] = []

    # -------------------------------
    # Evaluation
    # -------------------------------
    def _reconcile(
        self,
        device: Device,
        *,
        prior_status: str,
        prior_geofence_ids: Optional[List[str]],
        prior_battery: Optional[int] = None,
        geofence_alerts: bool = True,
    ) -> Device:
        now = self.clock()
        geofences = self.geofences.list()

        ev = evaluate(
            device,
            geofences,
            prior_status=prior_status,
            prior_geofence_ids=prior_geofence_ids,
            warning_margin=self.config.warning_margin_c,
            offline_after=self.config.offline_after_sec,
            now=now,
        )
        if not geofence_alerts:
            ev = dataclasses.replace(ev, entered=frozenset(), exited=frozenset())

        updated = self.devices.replace(device.model_copy(update={
            "status": ev.status,
            "is_in_geofence": ev.is_in_geofence,
            "geofence_ids": list(ev.geofence_ids),
        }))

        if ev.transitioned:
            logger.info(
                "device_status_changed",
                device_id=device.id,
                prior=ev.transitioned[0],
                status=ev.transitioned[1],
            )

        self.alerts.apply(
            updated,
            ev,
            geofences={g.id: g for g in geofences},
            prior_battery=prior_battery,
            now=now,
        )
        return updated

    def _refresh_containment(self) -> None:
        # geofence edits move membership without raising zone alerts
        for d in self.devices.list():
            self._reconcile(
                d,
                prior_status=d.status,
                prior_geofence_ids=d.geofence_ids,
                geofence_alerts=False,
            )

    def _record_temperature(self, device: Device) -> None:
        series = self._history.get(device.id)
        if series is None:
            series = deque(maxlen=self.config.temperature_history_size)
            self._history[device.id] = series
        series.append(TemperaturePoint(
            timestamp=device.last_update,
            value=device.temperature,
            device_id=device.id,
        ))

    # -------------------------------
    # Devices
    # -------------------------------
    def list_devices(self, status: Optional[str] = None, zone: Optional[str] = None) -> List[Device]:
        with self.lock:
            return self.devices.list(status=status, zone=zone)

    def get_device(self, device_id: str) -> Device:
        with self.lock:
            return self.devices.get(device_id)

    def create_device(self, spec: Union[DeviceCreate, Dict[str, Any]]) -> Device:
        with self.lock:
            device = self.devices.create(
                spec,
                default_threshold=self.system.default_temperature_threshold,
                now=self.clock(),
            )
            self._record_temperature(device)
            return self._reconcile(device, prior_status="online", prior_geofence_ids=None)

    def update_device(self, device_id: str, patch: Union[DeviceUpdate, Dict[str, Any]]) -> Device:
        with self.lock:
            prior = self.devices.get(device_id)
            device = self.devices.update(device_id, patch, now=self.clock())
            return self._reconcile(
                device,
                prior_status=prior.status,
                prior_geofence_ids=prior.geofence_ids,
            )

    def set_device_online(self, device_id: str, online: bool) -> Device:
        return self.update_device(device_id, DeviceUpdate(status="online" if online else "offline"))

    def delete_device(self, device_id: str) -> bool:
        with self.lock:
            self._history.pop(device_id, None)
            return self.devices.delete(device_id)

    def report_telemetry(
        self,
        device_id: str,
        reading: Union[TelemetryReading, Dict[str, Any]],
    ) -> Device:
        """
        Ingestion entry point (simulator or a real adapter).
        Applies one reading atomically, then evaluates and alerts.
        """
        with self.lock:
            prior = self.devices.get(device_id)
            device = self.devices.apply_telemetry(device_id, reading, now=self.clock())
            self._record_temperature(device)
            return self._reconcile(
                device,
                prior_status=prior.status,
                prior_geofence_ids=prior.geofence_ids,
                prior_battery=prior.battery_level,
            )

    # -------------------------------
    # Geofences
    # -------------------------------
    def list_geofences(self, active_only: bool = False) -> List[Geofence]:
        with self.lock:
            return self.geofences.list(active_only=active_only)

    def get_geofence(self, geofence_id: str) -> Geofence:
        with self.lock:
            return self.geofences.get(geofence_id)

    def create_geofence(self, spec: Union[GeofenceCreate, Dict[str, Any]]) -> Geofence:
        with self.lock:
            geofence = self.geofences.create(spec)
            self._refresh_containment()
            return geofence

    def update_geofence(self, geofence_id: str, patch: Union[GeofenceUpdate, Dict[str, Any]]) -> Geofence:
        with self.lock:
            geofence = self.geofences.update(geofence_id, patch)
            self._refresh_containment()
            return geofence

    def set_geofence_active(self, geofence_id: str, active: bool) -> Geofence:
        with self.lock:
            geofence = self.geofences.set_active(geofence_id, active)
            self._refresh_containment()
            return geofence

    def delete_geofence(self, geofence_id: str) -> bool:
        with self.lock:
            deleted = self.geofences.delete(geofence_id)
            if deleted:
                self._refresh_containment()
            return deleted

    # -------------------------------
    # Alerts
    # -------------------------------
    def list_alerts(self, **filters) -> List[Alert]:
        with self.lock:
            return self.alerts.list(**filters)

    def get_alert(self, alert_id: str) -> Alert:
        with self.lock:
            return self.alerts.get(alert_id)

    def mark_alert_read(self, alert_id: str) -> Alert:
        with self.lock:
            return self.alerts.mark_read(alert_id)

    def mark_all_alerts_read(self) -> int:
        with self.lock:
            return self.alerts.mark_all_read()

    def resolve_alert(self, alert_id: str) -> Alert:
        with self.lock:
            return self.alerts.resolve(alert_id, now=self.clock())

    def delete_alert(self, alert_id: str) -> bool:
        with self.lock:
            return self.alerts.delete(alert_id)

    def purge_alerts(self, days: Optional[int] = None) -> int:
        with self.lock:
            return self.alerts.purge_resolved_older_than(
                days if days is not None else self.system.alert_retention,
                now=self.clock(),
            )

    # -------------------------------
    # Settings
    # -------------------------------
    def get_system_settings(self) -> SystemSettings:
        with self.lock:
            return self.system

    def update_system_settings(self, patch: Union[SystemSettingsUpdate, Dict[str, Any]]) -> SystemSettings:
        try:
            if not isinstance(patch, SystemSettingsUpdate):
                patch = SystemSettingsUpdate.model_validate(patch)
        except pydantic.ValidationError as exc:
            raise ValidationError.from_pydantic(exc) from exc

        with self.lock:
            merged = self.system.model_dump()
            merged.update(patch.model_dump(exclude_unset=True))
            try:
                self.system = SystemSettings.model_validate(merged)
            except pydantic.ValidationError as exc:
                raise ValidationError.from_pydantic(exc) from exc

            self.alerts.language = self.system.language
            self.alerts.temperature_unit = self.system.temperature_unit
            logger.info("settings_updated", **patch.model_dump(exclude_unset=True))
            return self.system

    # -------------------------------
    # Read side
    # -------------------------------
    def system_stats(self) -> SystemStats:
        with self.lock:
            return stats.system_stats(
                self.devices.list(),
                self.alerts.list(),
                started_at=self.started_at,
                now=self.clock(),
            )

    def recent_alerts(self, limit: Optional[int] = None) -> List[Alert]:
        with self.lock:
            return stats.recent_alerts(
                self.alerts.list(),
                limit if limit is not None else self.config.recent_alerts_limit,
            )

    def analytics(self) -> Analytics:
        with self.lock:
            return stats.analytics(
                self.devices.list(),
                self.alerts.list(),
                {k: list(v) for k, v in self._history.items()},
            )

    def snapshot(self) -> Snapshot:
        with self.lock:
            return {
                "devices": [to_json(d) for d in self.devices.list()],
                "alerts": [to_json(a) for a in self.alerts.list()],
            }

    # -------------------------------
    # Periodic maintenance
    # -------------------------------
    def sweep(self) -> None:
        """
        Re-evaluate every online device (staleness -> offline) and
        enforce alert retention.
        """
        with self.lock:
            for d in self.devices.list():
                if d.status == "offline":
                    continue
                self._reconcile(d, prior_status=d.status, prior_geofence_ids=d.geofence_ids)
            self.alerts.purge_resolved_older_than(self.system.alert_retention, now=self.clock())

    # -------------------------------
    # Push channel
    # -------------------------------
    def on_data_updated(self, listener: DataListener) -> None:
        with self.lock:
            self._listeners.append(listener)

    def publish(self, snapshot: Snapshot) -> None:
        with self.lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("data_listener_failed", listener=repr(listener))

    # -------------------------------
    # Configuration import/export, reset
    # -------------------------------
    def export_configuration(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "exportedAt": to_json_ts(self.clock()),
                "devices": [to_json(d) for d in self.devices.list()],
                "geofences": [to_json(g) for g in self.geofences.list()],
                "settings": to_json(self.system),
            }

    def export_report(self) -> Dict[str, Any]:
        with self.lock:
            report = self.export_configuration()
            report["alerts"] = [to_json(a) for a in self.alerts.list()]
            report["statistics"] = to_json(self.system_stats())
            return report

    def import_configuration(self, data: Dict[str, Any]) -> Dict[str, int]:
        """
        Replace devices, geofences and settings with an exported payload.
        Alerts are kept. Invalid payloads leave the current state untouched.
        """
        try:
            devices = [Device.model_validate(d) for d in data.get("devices", [])]
            geofences = [Geofence.model_validate(g) for g in data.get("geofences", [])]
            system = SystemSettings.model_validate(data.get("settings") or self.system.model_dump())
        except pydantic.ValidationError as exc:
            raise ValidationError.from_pydantic(exc) from exc

        with self.lock:
            self.devices.clear()
            self.geofences.clear()
            self._history.clear()
            for g in geofences:
                self.geofences.add(g)
            for d in devices:
                self.devices.add(d)
                self._record_temperature(d)
            self.system = system
            self.alerts.language = system.language
            self.alerts.temperature_unit = system.temperature_unit
            self._refresh_containment()

            logger.info("configuration_imported", devices=len(devices), geofences=len(geofences))
            return {"devices": len(devices), "geofences": len(geofences)}

    def reset(self, seed: bool = True) -> Dict[str, int]:
        """
        Drop all volatile state; optionally re-seed the demo fleet.
        """
        with self.lock:
            counts = {
                "devices": len(self.devices),
                "geofences": len(self.geofences),
                "alerts": len(self.alerts),
            }
            self.devices.clear()
            self.geofences.clear()
            self.alerts.clear()
            self._history.clear()
            if seed:
                bootstrap_fleet(self)
            logger.info("state_reset", reseeded=seed, **counts)
            return counts


def to_json_ts(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")
