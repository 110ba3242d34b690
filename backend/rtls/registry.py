# rtls/registry.py
# ------------------------------------------------------------
# In-memory registries for devices and geofences.
#
# Each registry is the only mutator of its entities. Stored
# models are replaced, never edited in place, so a reader that
# already holds a Device keeps a consistent snapshot.
#
# Registries do not raise alerts; the service runs the
# evaluator and alert engine after each mutation.
# ------------------------------------------------------------

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Any, Union

import pydantic
import structlog

from .errors import NotFoundError, ValidationError
from .models import (
    Device,
    DeviceCreate,
    DeviceUpdate,
    Geofence,
    GeofenceCreate,
    GeofenceUpdate,
    TelemetryReading,
    utcnow,
)

logger = structlog.get_logger(__name__)


def _coerce(model_cls, data):
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc


def _rebuild(model_cls, current, changes: Dict[str, Any]):
    """
    Merge changes into a stored model and re-run validation.
    """
    merged = current.model_dump()
    merged.update(changes)
    try:
        return model_cls.model_validate(merged)
    except pydantic.ValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc


# -------------------------------
# Devices
# -------------------------------
class DeviceRegistry:
    def __init__(self) -> None:
        self._items: Dict[str, Device] = {}

    def __len__(self) -> int:
        return len(self._items)

    def create(
        self,
        spec: Union[DeviceCreate, Dict[str, Any]],
        *,
        default_threshold: float = 25.0,
        now: Optional[datetime] = None,
    ) -> Device:
        spec = _coerce(DeviceCreate, spec)
        data = spec.model_dump()
        if data.get("temperature_threshold") is None:
            data["temperature_threshold"] = default_threshold

        try:
            device = Device(
                **data,
                status="online",
                battery_level=100,
                last_update=now or utcnow(),
            )
        except pydantic.ValidationError as exc:
            raise ValidationError.from_pydantic(exc) from exc

        self._items[device.id] = device
        logger.info("device_created", device_id=device.id, name=device.name)
        return device

    def add(self, device: Device) -> Device:
        """
        Insert a fully-formed device (seeding, configuration import).
        """
        self._items[device.id] = device
        return device

    def get(self, device_id: str) -> Device:
        device = self._items.get(device_id)
        if device is None:
            raise NotFoundError("device", device_id)
        return device

    def list(self, status: Optional[str] = None, zone: Optional[str] = None) -> List[Device]:
        out = list(self._items.values())
        if status:
            out = [d for d in out if d.status == status]
        if zone:
            out = [d for d in out if d.zone == zone]
        return out

    def update(
        self,
        device_id: str,
        patch: Union[DeviceUpdate, Dict[str, Any]],
        *,
        now: Optional[datetime] = None,
    ) -> Device:
        current = self.get(device_id)
        patch = _coerce(DeviceUpdate, patch)
        changes = patch.model_dump(exclude_unset=True)
        changes["last_update"] = now or utcnow()

        device = _rebuild(Device, current, changes)
        self._items[device_id] = device
        return device

    def apply_telemetry(
        self,
        device_id: str,
        reading: Union[TelemetryReading, Dict[str, Any]],
        *,
        now: Optional[datetime] = None,
    ) -> Device:
        """
        Merge a telemetry sample. A received sample means the device is
        reachable again, so an offline device comes back online here.
        """
        current = self.get(device_id)
        reading = _coerce(TelemetryReading, reading)

        changes = reading.model_dump(exclude_none=True, exclude={"timestamp"})
        changes["last_update"] = reading.timestamp or now or utcnow()
        if current.status == "offline":
            changes["status"] = "online"

        device = _rebuild(Device, current, changes)
        self._items[device_id] = device
        return device

    def replace(self, device: Device) -> Device:
        """
        Store a derived copy (telemetry/evaluation results) of a known device.
        """
        if device.id not in self._items:
            raise NotFoundError("device", device.id)
        self._items[device.id] = device
        return device

    def delete(self, device_id: str) -> bool:
        removed = self._items.pop(device_id, None)
        if removed is not None:
            logger.info("device_deleted", device_id=device_id)
        return removed is not None

    def clear(self) -> None:
        self._items.clear()


# -------------------------------
# Geofences
# -------------------------------
class GeofenceRegistry:
    def __init__(self) -> None:
        self._items: Dict[str, Geofence] = {}

    def __len__(self) -> int:
        return len(self._items)

    def create(self, spec: Union[GeofenceCreate, Dict[str, Any]]) -> Geofence:
        spec = _coerce(GeofenceCreate, spec)
        geofence = Geofence(**spec.model_dump())
        self._items[geofence.id] = geofence
        logger.info("geofence_created", geofence_id=geofence.id, name=geofence.name)
        return geofence

    def add(self, geofence: Geofence) -> Geofence:
        self._items[geofence.id] = geofence
        return geofence

    def get(self, geofence_id: str) -> Geofence:
        geofence = self._items.get(geofence_id)
        if geofence is None:
            raise NotFoundError("geofence", geofence_id)
        return geofence

    def list(self, active_only: bool = False) -> List[Geofence]:
        out = list(self._items.values())
        if active_only:
            out = [g for g in out if g.is_active]
        return out

    def update(self, geofence_id: str, patch: Union[GeofenceUpdate, Dict[str, Any]]) -> Geofence:
        current = self.get(geofence_id)
        patch = _coerce(GeofenceUpdate, patch)
        changes = patch.model_dump(exclude_unset=True)

        geofence = _rebuild(Geofence, current, changes)
        self._items[geofence_id] = geofence
        return geofence

    def set_active(self, geofence_id: str, active: bool) -> Geofence:
        return self.update(geofence_id, GeofenceUpdate(is_active=active))

    def delete(self, geofence_id: str) -> bool:
        removed = self._items.pop(geofence_id, None)
        if removed is not None:
            logger.info("geofence_deleted", geofence_id=geofence_id)
        return removed is not None

    def clear(self) -> None:
        self._items.clear()
