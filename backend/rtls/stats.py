# rtls/stats.py
# ------------------------------------------------------------
# Read-side aggregation for dashboards (counts, averages,
# recent alerts, temperature history). Pure functions over
# snapshots; callers hold whatever lock they need.
# ------------------------------------------------------------

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Sequence

from .models import (
    DEVICE_STATUSES,
    Alert,
    Analytics,
    Device,
    SystemStats,
    TemperaturePoint,
)


def average_temperature(devices: Sequence[Device]) -> float:
    # empty registry -> 0, never NaN
    if not devices:
        return 0.0
    return round(sum(d.temperature for d in devices) / len(devices), 1)


def devices_by_status(devices: Iterable[Device]) -> Dict[str, int]:
    counts = {s: 0 for s in DEVICE_STATUSES}
    for d in devices:
        counts[d.status] += 1
    return counts


def system_stats(
    devices: Sequence[Device],
    alerts: Sequence[Alert],
    *,
    started_at: datetime,
    now: datetime,
) -> SystemStats:
    by_status = devices_by_status(devices)
    active = [a for a in alerts if a.status == "active"]

    return SystemStats(
        total_devices=len(devices),
        online_devices=by_status["online"],
        warning_devices=by_status["warning"],
        critical_devices=by_status["critical"],
        offline_devices=by_status["offline"],
        total_alerts=len(alerts),
        active_alerts=len(active),
        resolved_alerts=len(alerts) - len(active),
        critical_alerts=sum(1 for a in active if a.severity == "critical"),
        average_temperature=average_temperature(devices),
        uptime_seconds=max(0, int((now - started_at).total_seconds())),
    )


def recent_alerts(alerts: Iterable[Alert], limit: int = 5) -> List[Alert]:
    """
    Active alerts, newest first, capped at `limit`.
    """
    active = [a for a in alerts if a.status == "active"]
    active.sort(key=lambda a: a.timestamp, reverse=True)
    return active[:limit]


def analytics(
    devices: Sequence[Device],
    alerts: Sequence[Alert],
    history: Dict[str, Iterable[TemperaturePoint]],
) -> Analytics:
    by_status = devices_by_status(devices)
    points = sorted(
        (p for series in history.values() for p in series),
        key=lambda p: p.timestamp,
    )

    return Analytics(
        total_devices=len(devices),
        active_devices=by_status["online"],
        offline_devices=by_status["offline"],
        critical_alerts=sum(
            1 for a in alerts if a.status == "active" and a.severity == "critical"
        ),
        average_temperature=average_temperature(devices),
        devices_by_status=by_status,
        temperature_history=points,
    )
