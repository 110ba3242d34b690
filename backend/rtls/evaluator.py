# rtls/evaluator.py
# ------------------------------------------------------------
# Status & containment evaluation.
#
# The single place where a device's status and geofence
# membership are derived. Pure: takes a device snapshot and the
# geofence list, returns an Evaluation; never mutates anything.
#
# Rules:
# - offline: explicitly marked offline, or last_update older
#   than the staleness window (containment is kept as-is)
# - critical: temperature > threshold (strict)
# - warning: threshold - margin < temperature <= threshold
# - online: anything else
# ------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import FrozenSet, Iterable, Optional, Tuple

from .geo import contains
from .models import Device, Geofence, utcnow


@dataclass(frozen=True)
class Evaluation:
    status: str
    is_in_geofence: bool
    geofence_ids: Tuple[str, ...] = ()
    entered: FrozenSet[str] = field(default_factory=frozenset)
    exited: FrozenSet[str] = field(default_factory=frozenset)
    transitioned: Optional[Tuple[str, str]] = None
    # offline because no reading arrived in time (vs. marked offline)
    stale: bool = False

    def entered_status(self, status: str) -> bool:
        return self.transitioned is not None and self.transitioned[1] == status


def thermal_status(temperature: float, threshold: float, margin: float) -> str:
    if temperature > threshold:
        return "critical"
    if margin > 0 and temperature > threshold - margin:
        return "warning"
    return "online"


def is_stale(device: Device, offline_after: float, now: datetime) -> bool:
    if offline_after <= 0:
        return False
    return now - device.last_update > timedelta(seconds=offline_after)


def evaluate(
    device: Device,
    geofences: Iterable[Geofence],
    *,
    prior_status: Optional[str] = None,
    prior_geofence_ids: Optional[Iterable[str]] = None,
    warning_margin: float = 2.0,
    offline_after: float = 0,
    now: Optional[datetime] = None,
) -> Evaluation:
    """
    Derive status and containment for one device.

    prior_status defaults to the status stored on the device.
    prior_geofence_ids=None means "first evaluation": containment is
    computed but no entry/exit transitions are reported.
    """
    now = now or utcnow()
    prior = prior_status if prior_status is not None else device.status

    if device.status == "offline" or is_stale(device, offline_after, now):
        return Evaluation(
            status="offline",
            is_in_geofence=device.is_in_geofence,
            geofence_ids=tuple(device.geofence_ids),
            transitioned=(prior, "offline") if prior != "offline" else None,
            stale=device.status != "offline",
        )

    inside = tuple(
        g.id
        for g in geofences
        if g.is_active and contains(g, device.latitude, device.longitude)
    )

    entered: FrozenSet[str] = frozenset()
    exited: FrozenSet[str] = frozenset()
    if prior_geofence_ids is not None:
        before = frozenset(prior_geofence_ids)
        now_in = frozenset(inside)
        entered = now_in - before
        exited = before - now_in

    status = thermal_status(device.temperature, device.temperature_threshold, warning_margin)

    return Evaluation(
        status=status,
        is_in_geofence=bool(inside),
        geofence_ids=inside,
        entered=entered,
        exited=exited,
        transitioned=(prior, status) if prior != status else None,
    )
