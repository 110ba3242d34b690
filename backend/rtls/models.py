# rtls/models.py
# ------------------------------------------------------------
# Core domain models for the RTLS backend
#
# Python attributes are snake_case; the JSON contract consumed
# by the desktop/mobile UIs is camelCase (macAddress,
# temperatureThreshold, isInGeofence, ...). Both forms are
# accepted on input.
# ------------------------------------------------------------

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel
from typing import Optional, Literal, List, Dict, Any
from datetime import datetime, timezone
import uuid


# -------------------------------
# Shared helpers & enums
# -------------------------------
DeviceStatus = Literal["online", "warning", "critical", "offline"]
AlertType = Literal["temperature", "offline", "battery", "geofence"]
Severity = Literal["low", "medium", "high", "critical"]
AlertState = Literal["unread_active", "read_active", "resolved"]
TemperatureUnit = Literal["celsius", "fahrenheit"]
Language = Literal["en", "fr"]

DEVICE_STATUSES = ("online", "warning", "critical", "offline")


def uid(prefix: str) -> str:
    """
    Short, readable IDs for UI/debugging.
    Example: dev_a3f91c2b1e
    """
    return f"{prefix}_{uuid.uuid4().hex[:10]}"


def utcnow() -> datetime:
    """
    Always return timezone-aware UTC datetime.
    """
    return datetime.now(timezone.utc)


def to_json(model: BaseModel) -> Dict[str, Any]:
    """
    Serialize a model the way the UIs expect it (camelCase, ISO dates).
    """
    return model.model_dump(mode="json", by_alias=True)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PatchModel(CamelModel):
    # unknown keys in a patch are a client error, not something to drop
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


# -------------------------------
# Device
# -------------------------------
class Device(CamelModel):
    """
    A tracked GPS/temperature sensor and its last known telemetry.
    """

    id: str = Field(default_factory=lambda: uid("dev"))
    name: str = Field(min_length=1)
    mac_address: str = ""
    zone: Optional[str] = None

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)

    temperature: float
    temperature_threshold: float = Field(ge=-50.0, le=150.0)

    status: DeviceStatus = "online"
    battery_level: int = Field(default=100, ge=0, le=100)
    last_update: datetime = Field(default_factory=utcnow)

    # Derived by the evaluator
    is_in_geofence: bool = False
    geofence_ids: List[str] = Field(default_factory=list)

    signal_strength: Optional[int] = None
    firmware: Optional[str] = None


class DeviceCreate(CamelModel):
    name: str = Field(min_length=1)
    mac_address: str = ""
    zone: Optional[str] = None
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    temperature: float = 20.0
    # falls back to SystemSettings.default_temperature_threshold
    temperature_threshold: Optional[float] = Field(default=None, ge=-50.0, le=150.0)
    signal_strength: Optional[int] = None
    firmware: Optional[str] = None


class DeviceUpdate(PatchModel):
    """
    User-editable fields. Temperature and battery only move through
    telemetry; status can only be toggled between offline and online.
    """

    name: Optional[str] = Field(default=None, min_length=1)
    mac_address: Optional[str] = None
    zone: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(default=None, ge=-180.0, le=180.0)
    temperature_threshold: Optional[float] = Field(default=None, ge=-50.0, le=150.0)
    status: Optional[Literal["online", "offline"]] = None
    signal_strength: Optional[int] = None
    firmware: Optional[str] = None


class TelemetryReading(PatchModel):
    """
    One sample from the ingestion side (simulator or a real adapter).
    Omitted fields keep their last known value.
    """

    temperature: Optional[float] = None
    battery_level: Optional[int] = Field(default=None, ge=0, le=100)
    latitude: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(default=None, ge=-180.0, le=180.0)
    signal_strength: Optional[int] = None
    timestamp: Optional[datetime] = None


# -------------------------------
# Geofence
# -------------------------------
class GeoPoint(CamelModel):
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class Geofence(CamelModel):
    """
    A named circular safety zone.
    """

    id: str = Field(default_factory=lambda: uid("geo"))
    name: str = Field(min_length=1)
    description: str = ""

    center: GeoPoint
    radius: float = Field(gt=0)   # meters

    alert_on_entry: bool = False
    alert_on_exit: bool = True
    is_active: bool = True

    color: Optional[str] = None


class GeofenceCreate(CamelModel):
    name: str = Field(min_length=1)
    description: str = ""
    center: GeoPoint
    radius: float = Field(gt=0)
    alert_on_entry: bool = False
    alert_on_exit: bool = True
    is_active: bool = True
    color: Optional[str] = None


class GeofenceUpdate(PatchModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    center: Optional[GeoPoint] = None
    radius: Optional[float] = Field(default=None, gt=0)
    alert_on_entry: Optional[bool] = None
    alert_on_exit: Optional[bool] = None
    is_active: Optional[bool] = None
    color: Optional[str] = None


# -------------------------------
# Alert
# -------------------------------
class Alert(CamelModel):
    """
    A detected anomaly. Identity fields are fixed at creation; only
    the lifecycle state moves (unread_active -> read_active -> resolved).
    """

    id: str = Field(default_factory=lambda: uid("alr"))
    device_id: str
    device_name: str

    type: AlertType
    severity: Severity
    message: str

    timestamp: datetime = Field(default_factory=utcnow)
    zone: Optional[str] = None

    state: AlertState = "unread_active"
    resolved_at: Optional[datetime] = None

    # Views for both UI variants (desktop: status, mobile: flags)
    @computed_field
    @property
    def status(self) -> str:
        return "resolved" if self.state == "resolved" else "active"

    @computed_field(alias="isRead")
    @property
    def is_read(self) -> bool:
        return self.state != "unread_active"

    @computed_field(alias="isResolved")
    @property
    def is_resolved(self) -> bool:
        return self.state == "resolved"


# -------------------------------
# System settings (runtime-editable)
# -------------------------------
class SystemSettings(CamelModel):
    temperature_unit: TemperatureUnit = "celsius"
    default_temperature_threshold: float = Field(default=25.0, ge=-50.0, le=150.0)
    update_interval: int = Field(default=10, ge=1)       # seconds
    alert_retention: int = Field(default=30, ge=1)       # days
    enable_sound_alerts: bool = True
    enable_desktop_notifications: bool = True
    map_provider: str = "openstreetmap"
    language: Language = "en"


class SystemSettingsUpdate(PatchModel):
    temperature_unit: Optional[TemperatureUnit] = None
    default_temperature_threshold: Optional[float] = Field(default=None, ge=-50.0, le=150.0)
    update_interval: Optional[int] = Field(default=None, ge=1)
    alert_retention: Optional[int] = Field(default=None, ge=1)
    enable_sound_alerts: Optional[bool] = None
    enable_desktop_notifications: Optional[bool] = None
    map_provider: Optional[str] = None
    language: Optional[Language] = None


# -------------------------------
# Read-side aggregates
# -------------------------------
class SystemStats(CamelModel):
    total_devices: int = 0
    online_devices: int = 0
    warning_devices: int = 0
    critical_devices: int = 0
    offline_devices: int = 0
    total_alerts: int = 0
    active_alerts: int = 0
    resolved_alerts: int = 0
    critical_alerts: int = 0
    average_temperature: float = 0.0
    uptime_seconds: int = 0


class TemperaturePoint(CamelModel):
    timestamp: datetime
    value: float
    device_id: str


class Analytics(CamelModel):
    total_devices: int = 0
    active_devices: int = 0
    offline_devices: int = 0
    critical_alerts: int = 0
    average_temperature: float = 0.0
    devices_by_status: Dict[str, int] = Field(default_factory=dict)
    temperature_history: List[TemperaturePoint] = Field(default_factory=list)
