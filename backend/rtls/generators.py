# rtls/generators.py
# ------------------------------------------------------------
# Synthetic telemetry (demo/testing):
# - bounded random temperature drift, clamped to a sane range
# - occasional battery drain (floor 0)
# - tiny GPS drift so devices near a geofence edge can cross it
#
# Also seeds a demo fleet (devices + safety zones) so a fresh
# backend has something to show. Seeding goes through the
# service, so the usual evaluation and alerting apply.
# ------------------------------------------------------------

from __future__ import annotations

import random
from typing import Any, Dict, List

from .models import Device, TelemetryReading


def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


# -------------------------------
# Simulation primitives
# -------------------------------
def perturb_temperature(
    value: float,
    rng: random.Random,
    jitter: float = 0.5,
    lo: float = 0.0,
    hi: float = 40.0,
) -> float:
    """
    Random walk step of at most +/- jitter degrees, rounded to 0.1.
    """
    return round(clamp(value + rng.uniform(-jitter, jitter), lo, hi), 1)


def drain_battery(level: int, rng: random.Random, probability: float = 0.1) -> int:
    if rng.random() < probability:
        return max(0, level - 1)
    return level


def drift(lat: float, lon: float, rng: random.Random, jitter_deg: float) -> tuple:
    if jitter_deg <= 0:
        return lat, lon
    return (
        clamp(lat + rng.uniform(-jitter_deg, jitter_deg), -90.0, 90.0),
        clamp(lon + rng.uniform(-jitter_deg, jitter_deg), -180.0, 180.0),
    )


def next_reading(device: Device, rng: random.Random, config) -> TelemetryReading:
    """
    Build the next simulated sample for a device from its last state.
    """
    lat, lon = drift(device.latitude, device.longitude, rng, config.position_jitter_deg)
    return TelemetryReading(
        temperature=perturb_temperature(
            device.temperature,
            rng,
            jitter=config.temperature_jitter_c,
            lo=config.temperature_floor_c,
            hi=config.temperature_ceiling_c,
        ),
        battery_level=drain_battery(device.battery_level, rng, config.battery_drain_probability),
        latitude=lat,
        longitude=lon,
    )


# -------------------------------
# Demo fleet
# -------------------------------
DEMO_GEOFENCES: List[Dict[str, Any]] = [
    {
        "name": "Secure Zone A",
        "description": "Main zone with controlled access",
        "center": {"latitude": 52.5200, "longitude": 13.4050},
        "radius": 500,
        "alert_on_entry": True,
        "alert_on_exit": True,
        "is_active": True,
        "color": "#0066CC",
    },
    {
        "name": "Warehouse B perimeter",
        "description": "Sensitive storage area",
        "center": {"latitude": 52.5300, "longitude": 13.3900},
        "radius": 300,
        "alert_on_entry": False,
        "alert_on_exit": True,
        "is_active": True,
        "color": "#FF6B35",
    },
    {
        "name": "Critical Zone C",
        "description": "Restricted access - server room",
        "center": {"latitude": 52.5250, "longitude": 13.4200},
        "radius": 200,
        "alert_on_entry": True,
        "alert_on_exit": True,
        "is_active": False,
        "color": "#E74C3C",
    },
]

# (create spec, telemetry overrides, offline)
DEMO_DEVICES: List[tuple] = [
    (
        {"name": "Main Office Sensor", "mac_address": "00:1B:44:11:3A:B7", "zone": "Zone A",
         "latitude": 52.5200, "longitude": 13.4050, "temperature": 22.5,
         "temperature_threshold": 25.0, "firmware": "2.1.3"},
        {"battery_level": 85, "signal_strength": -45},
        False,
    ),
    (
        {"name": "North Warehouse Sensor", "mac_address": "00:1B:44:11:3A:B8", "zone": "Zone B",
         "latitude": 52.5300, "longitude": 13.3900, "temperature": 28.3,
         "temperature_threshold": 25.0, "firmware": "2.1.3"},
        {"battery_level": 62, "signal_strength": -52},
        False,
    ),
    (
        {"name": "West Parking Sensor", "mac_address": "00:1B:44:11:3A:B9", "zone": "Zone A",
         "latitude": 52.5150, "longitude": 13.4100, "temperature": 19.8,
         "temperature_threshold": 25.0, "firmware": "2.1.2"},
        {"battery_level": 91, "signal_strength": -38},
        False,
    ),
    (
        {"name": "Server Room Sensor", "mac_address": "00:1B:44:11:3A:C0", "zone": "Zone C",
         "latitude": 52.5250, "longitude": 13.4200, "temperature": 16.2,
         "temperature_threshold": 20.0, "firmware": "2.0.8"},
        {"battery_level": 0, "signal_strength": 0},
        True,
    ),
    (
        {"name": "East Production Sensor", "mac_address": "00:1B:44:11:3A:C1", "zone": "Zone B",
         "latitude": 52.5180, "longitude": 13.4250, "temperature": 24.1,
         "temperature_threshold": 30.0, "firmware": "2.1.3"},
        {"battery_level": 76, "signal_strength": -41},
        False,
    ),
]


def bootstrap_fleet(service) -> Dict[str, int]:
    """
    Seed demo geofences and devices.
    Safe to call repeatedly; only runs if the device registry is empty.
    """
    if service.list_devices():
        return {"devices": 0, "geofences": 0}

    for spec in DEMO_GEOFENCES:
        service.create_geofence(spec)

    for spec, telemetry, offline in DEMO_DEVICES:
        device = service.create_device(spec)
        service.report_telemetry(device.id, telemetry)
        if offline:
            service.set_device_online(device.id, False)

    return {"devices": len(DEMO_DEVICES), "geofences": len(DEMO_GEOFENCES)}
